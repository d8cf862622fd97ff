"""Protocol policy — typed access to config/protocol_params.json.

The resolver validates the parameter file on load and refuses to build
from a file that breaks a protocol invariant (non-monotonic confidence
floors, a loss distribution that does not sum to 10 000 bps).
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from seek.errors import ConfigError, ValidationError


PARAMS_FILENAME = "protocol_params.json"
BPS_TOTAL = 10_000


@dataclass(frozen=True)
class TierPolicy:
    tier: int
    stake_base_units: int
    duration_seconds: int
    confidence_floor: float
    difficulty: str


def validate_params(params: dict[str, Any]) -> list[str]:
    """Check protocol parameter invariants. Returns errors (empty = OK)."""
    errors: list[str] = []

    tiers = params.get("tiers", {})
    if sorted(tiers) != ["1", "2", "3"]:
        errors.append(f"tiers must be exactly 1, 2, 3; got {sorted(tiers)}")
        return errors

    floors = [tiers[t]["confidence_floor"] for t in ("1", "2", "3")]
    for floor in floors:
        if not 0.0 < floor <= 1.0:
            errors.append(f"confidence_floor must be in (0, 1], got {floor}")
    if floors != sorted(floors):
        errors.append(f"confidence floors must not decrease with tier: {floors}")

    durations = [tiers[t]["duration_seconds"] for t in ("1", "2", "3")]
    if any(d <= 0 for d in durations):
        errors.append("duration_seconds must be > 0 for every tier")
    stakes = [tiers[t]["stake_base_units"] for t in ("1", "2", "3")]
    if any((not isinstance(s, int)) or s <= 0 for s in stakes):
        errors.append("stake_base_units must be a positive integer for every tier")

    settlement = params.get("settlement", {})
    split = settlement.get("failure_distribution_bps", {})
    if sum(split.values()) != BPS_TOTAL:
        errors.append(
            f"failure_distribution_bps must sum to {BPS_TOTAL}, got {sum(split.values())}"
        )
    if settlement.get("challenge_window_seconds", 0) <= 0:
        errors.append("challenge_window_seconds must be > 0")
    if settlement.get("jackpot_odds", 0) <= 0:
        errors.append("jackpot_odds must be > 0")

    finalizer = params.get("finalizer", {})
    if finalizer.get("max_attempts", 0) < 1:
        errors.append("finalizer.max_attempts must be >= 1")

    image = params.get("image", {})
    if image.get("min_bytes", 0) >= image.get("max_bytes", 0):
        errors.append("image.min_bytes must be below image.max_bytes")

    return errors


class PolicyResolver:
    """Typed, validated view over the protocol parameter file.

    Usage:
        resolver = PolicyResolver.from_config_dir(Path("config"))
        floor = resolver.tier_policy(2).confidence_floor
    """

    def __init__(self, params: dict[str, Any]) -> None:
        errors = validate_params(params)
        if errors:
            raise ConfigError("; ".join(errors))
        self._params = params

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        path = Path(config_dir) / PARAMS_FILENAME
        if not path.exists():
            raise ConfigError(f"Missing protocol parameters: {path}")
        with path.open("r", encoding="utf-8") as handle:
            return cls(json.load(handle))

    @property
    def params(self) -> dict[str, Any]:
        return self._params

    def tier_policy(self, tier: int) -> TierPolicy:
        """Return the policy for *tier*.

        Raises:
            ValidationError: If the tier is not one of 1, 2, 3.
        """
        if isinstance(tier, bool) or not isinstance(tier, int):
            raise ValidationError(f"Tier must be an integer, got {tier!r}")
        entry = self._params["tiers"].get(str(tier))
        if entry is None:
            raise ValidationError(f"Invalid tier {tier}; must be 1, 2 or 3")
        return TierPolicy(
            tier=tier,
            stake_base_units=int(entry["stake_base_units"]),
            duration_seconds=int(entry["duration_seconds"]),
            confidence_floor=float(entry["confidence_floor"]),
            difficulty=entry["difficulty"],
        )

    def tiers(self) -> list[TierPolicy]:
        return [self.tier_policy(t) for t in (1, 2, 3)]

    @property
    def challenge_window_seconds(self) -> int:
        return int(self._params["settlement"]["challenge_window_seconds"])

    def settlement(self) -> dict[str, Any]:
        return dict(self._params["settlement"])

    def section(self, name: str) -> dict[str, Any]:
        """Return a copy of a top-level config section (empty if absent)."""
        return dict(self._params.get(name, {}))
