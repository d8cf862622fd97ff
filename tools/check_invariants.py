#!/usr/bin/env python3
"""Seek invariant checks against the protocol parameter and mission files."""

import json
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
PARAMS_PATH = ROOT / "config" / "protocol_params.json"
MISSIONS_PATH = ROOT / "config" / "missions.json"

BPS_TOTAL = 10_000


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def check_tiers(tiers: dict, errors: list[str]) -> None:
    """Tier table: exactly 1..3, floors non-decreasing, timers shrinking."""
    if sorted(tiers) != ["1", "2", "3"]:
        errors.append(f"tiers must be exactly 1, 2, 3; got {sorted(tiers)}")
        return
    floors = [tiers[t]["confidence_floor"] for t in ("1", "2", "3")]
    if floors != sorted(floors):
        errors.append(f"confidence floors must not decrease with tier: {floors}")
    if any(not 0.0 < f <= 1.0 for f in floors):
        errors.append(f"confidence floors must be in (0, 1]: {floors}")
    durations = [tiers[t]["duration_seconds"] for t in ("1", "2", "3")]
    if durations != sorted(durations, reverse=True):
        errors.append(f"harder tiers must not get longer timers: {durations}")
    stakes = [tiers[t]["stake_base_units"] for t in ("1", "2", "3")]
    if stakes != sorted(stakes):
        errors.append(f"stakes must not decrease with tier: {stakes}")


def check() -> int:
    params = load_json(PARAMS_PATH)
    missions = load_json(MISSIONS_PATH)["missions"]
    errors: list[str] = []

    # --- Tier invariants ---
    check_tiers(params["tiers"], errors)

    # --- Settlement invariants ---
    settlement = params["settlement"]
    split = settlement["failure_distribution_bps"]
    if sum(split.values()) != BPS_TOTAL:
        errors.append(f"failure_distribution_bps must sum to {BPS_TOTAL}, got {sum(split.values())}")
    if any(v < 0 for v in split.values()):
        errors.append("failure_distribution_bps entries must be non-negative")
    if settlement["challenge_window_seconds"] <= 0:
        errors.append("challenge_window_seconds must be > 0")

    # --- Finalizer invariants ---
    finalizer = params["finalizer"]
    if finalizer["max_attempts"] < 1:
        errors.append("finalizer.max_attempts must be >= 1")
    if finalizer["poll_interval_seconds"] >= settlement["challenge_window_seconds"]:
        errors.append("finalizer poll interval should be shorter than the challenge window")

    # --- Pre-check invariants ---
    precheck = params["precheck"]
    if precheck["precapture_tolerance_seconds"] >= precheck["max_photo_age_seconds"]:
        errors.append("precapture tolerance must be well below max photo age")

    # --- Mission catalog invariants ---
    ids = [m["id"] for m in missions]
    if len(ids) != len(set(ids)):
        errors.append("mission ids must be unique")
    for tier in ("1", "2", "3"):
        if not any(str(m["tier"]) == tier for m in missions):
            errors.append(f"mission catalog has no mission for tier {tier}")

    if errors:
        print("Invariant check FAILED:")
        for error in errors:
            print(f"  - {error}")
        return 1

    print("Invariant check passed.")
    return 0


if __name__ == "__main__":
    sys.exit(check())
