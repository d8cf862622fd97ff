"""Mission catalog — the read-only pool of photographable targets.

Missions are loaded once from config/missions.json. Selection for a new
bounty is uniformly random within a tier using ``secrets`` so the chosen
target cannot be predicted from server state.
"""

from __future__ import annotations

import json
import secrets
from pathlib import Path
from typing import Optional

from seek.errors import ConfigError, ValidationError
from seek.models.bounty import Mission


MISSIONS_FILENAME = "missions.json"


class MissionCatalog:
    """Immutable collection of missions grouped by tier."""

    def __init__(self, missions: list[Mission]) -> None:
        self._by_id: dict[str, Mission] = {}
        self._by_tier: dict[int, list[Mission]] = {}
        for mission in missions:
            if mission.mission_id in self._by_id:
                raise ConfigError(f"Duplicate mission id: {mission.mission_id}")
            self._by_id[mission.mission_id] = mission
            self._by_tier.setdefault(mission.tier, []).append(mission)

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> MissionCatalog:
        path = Path(config_dir) / MISSIONS_FILENAME
        if not path.exists():
            raise ConfigError(f"Missing mission catalog: {path}")
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        return cls([
            Mission(
                mission_id=entry["id"],
                tier=int(entry["tier"]),
                description=entry["description"],
                keywords=tuple(entry.get("keywords", [])),
                difficulty=entry.get("difficulty", ""),
            )
            for entry in data["missions"]
        ])

    def get(self, mission_id: str) -> Optional[Mission]:
        return self._by_id.get(mission_id)

    def for_tier(self, tier: int) -> list[Mission]:
        return list(self._by_tier.get(tier, []))

    def pick(self, tier: int) -> Mission:
        """Pick a random mission for *tier*.

        Raises:
            ValidationError: If the catalog has no mission for the tier.
        """
        pool = self._by_tier.get(tier)
        if not pool:
            raise ValidationError(f"No missions available for tier {tier}")
        return pool[secrets.randbelow(len(pool))]

    def __len__(self) -> int:
        return len(self._by_id)
