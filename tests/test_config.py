"""Tests for protocol policy, mission catalog and deployment settings."""

from __future__ import annotations

import copy
import json
from collections import Counter
from pathlib import Path

import pytest

from seek.config import Settings
from seek.errors import ConfigError, ValidationError
from seek.missions.catalog import MissionCatalog
from seek.models.bounty import Mission
from seek.policy import PolicyResolver, validate_params


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"

ENV = {
    "RPC_URL": "http://localhost:8545",
    "AUTHORITY_PRIVATE_KEY": "0x" + "11" * 32,
    "SETTLEMENT_CONTRACT_ADDRESS": "0x" + "c0" * 20,
    "CREDENTIAL_TOKEN_ADDRESS": "0x" + "d0" * 20,
    "GEMINI_API_KEY": "test-key",
}

OPTIONAL = (
    "SEEK_ENV", "CHAIN_ID", "VISION_MODEL", "STRICT_PRECHECKS", "IDENTITY_DOMAIN",
    "IDENTITY_URI", "DATA_DIR", "LOG_LEVEL", "ATTESTATION_ROOTS_PEM",
)


def _params() -> dict:
    with (CONFIG_DIR / "protocol_params.json").open(encoding="utf-8") as handle:
        return json.load(handle)


@pytest.fixture
def env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in OPTIONAL:
        monkeypatch.delenv(name, raising=False)
    for name, value in ENV.items():
        monkeypatch.setenv(name, value)
    return monkeypatch


class TestPolicy:
    def test_shipped_params_are_valid(self) -> None:
        assert validate_params(_params()) == []

    def test_tier_table(self, resolver) -> None:
        floors = [resolver.tier_policy(t).confidence_floor for t in (1, 2, 3)]
        assert floors == [0.80, 0.85, 0.90]
        assert [p.duration_seconds for p in resolver.tiers()] == [600, 300, 120]
        assert resolver.challenge_window_seconds == 300

    @pytest.mark.parametrize("tier", [0, 4, "1", True, None])
    def test_invalid_tier(self, resolver, tier) -> None:
        with pytest.raises(ValidationError):
            resolver.tier_policy(tier)

    def test_decreasing_floor_rejected(self) -> None:
        params = _params()
        params["tiers"]["3"]["confidence_floor"] = 0.5
        with pytest.raises(ConfigError, match="must not decrease"):
            PolicyResolver(params)

    def test_distribution_must_sum(self) -> None:
        params = _params()
        params["settlement"]["failure_distribution_bps"]["house"] = 6000
        assert any("sum to 10000" in e for e in validate_params(params))

    def test_section_is_a_copy(self, resolver) -> None:
        section = resolver.section("finalizer")
        section["max_attempts"] = 0
        assert resolver.section("finalizer")["max_attempts"] == 10
        assert resolver.section("missing") == {}

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(ConfigError, match="Missing protocol parameters"):
            PolicyResolver.from_config_dir(tmp_path)


class TestCatalog:
    def test_shipped_catalog_covers_every_tier(self) -> None:
        catalog = MissionCatalog.from_config_dir(CONFIG_DIR)
        assert all(catalog.for_tier(t) for t in (1, 2, 3))

    def test_pick_stays_in_tier(self, catalog) -> None:
        for _ in range(20):
            assert catalog.pick(2).tier == 2

    def test_pick_is_spread(self) -> None:
        catalog = MissionCatalog([Mission(f"m{i}", 1, "x", (), "easy") for i in range(4)])
        picked = Counter(catalog.pick(1).mission_id for _ in range(400))
        assert len(picked) == 4

    def test_empty_tier(self) -> None:
        with pytest.raises(ValidationError, match="No missions"):
            MissionCatalog([]).pick(1)

    def test_duplicate_ids_rejected(self) -> None:
        m = Mission("m1", 1, "x", (), "easy")
        with pytest.raises(ConfigError, match="Duplicate mission id"):
            MissionCatalog([m, copy.copy(m)])


class TestSettings:
    def test_from_env(self, env) -> None:
        settings = Settings.from_env()
        assert settings.chain_id == 11155111
        assert not settings.is_production
        assert settings.strict_prechecks
        assert settings.attestation_roots_path is None

    def test_missing_variables_listed_together(self, env) -> None:
        env.delenv("RPC_URL")
        env.delenv("GEMINI_API_KEY")
        with pytest.raises(ConfigError, match="RPC_URL, GEMINI_API_KEY"):
            Settings.from_env()

    def test_bad_chain_id(self, env) -> None:
        env.setenv("CHAIN_ID", "mainnet")
        with pytest.raises(ConfigError, match="CHAIN_ID"):
            Settings.from_env()

    def test_production_flags(self, env) -> None:
        env.setenv("SEEK_ENV", "Production")
        env.setenv("STRICT_PRECHECKS", "false")
        settings = Settings.from_env()
        assert settings.is_production
        assert not settings.strict_prechecks

    def test_repr_hides_secrets(self, env) -> None:
        text = repr(Settings.from_env())
        assert ENV["AUTHORITY_PRIVATE_KEY"] not in text
        assert ENV["GEMINI_API_KEY"] not in text

    def test_env_file(self, env, tmp_path) -> None:
        env.delenv("GEMINI_API_KEY")
        dotenv = tmp_path / "seek.env"
        dotenv.write_text("GEMINI_API_KEY=from-file\n", encoding="utf-8")
        assert Settings.from_env(dotenv).gemini_api_key == "from-file"
