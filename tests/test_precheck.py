"""Tests for the anti-fraud pre-checks."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from seek.errors import ConfigError
from seek.models.bounty import PhotoMetadata
from seek.validation.precheck import PRECHECK_CONFIDENCE, AntiFraudPreChecker, PreCheckPolicy


def _now() -> datetime:
    return datetime(2026, 2, 16, 12, 0, 0, tzinfo=timezone.utc)


def _meta(captured=None, *, gps=True, make="Google", model="Pixel 8") -> PhotoMetadata:
    return PhotoMetadata(
        captured_utc=captured,
        latitude=51.5 if gps else None,
        longitude=-0.12 if gps else None,
        device_make=make,
        device_model=model,
    )


@pytest.fixture
def checker(resolver) -> AntiFraudPreChecker:
    return AntiFraudPreChecker(PreCheckPolicy.from_config(resolver.section("precheck")), production=True)


class TestPolicy:
    def test_bypass_refused_in_production(self) -> None:
        with pytest.raises(ConfigError, match="not allowed in production"):
            AntiFraudPreChecker(PreCheckPolicy.bypass(), production=True)

    def test_bypass_allowed_outside_production(self) -> None:
        checker = AntiFraudPreChecker(PreCheckPolicy.bypass(), production=False)
        started = _now()
        assert checker.check(PhotoMetadata(), started, now=started) is None

    def test_from_config_reads_thresholds(self) -> None:
        policy = PreCheckPolicy.from_config({"max_photo_age_seconds": 60}, enforce=True)
        assert policy.max_photo_age_seconds == 60
        assert policy.precapture_tolerance_seconds == 10


class TestScreenshot:
    def test_no_gps_no_device_is_screenshot(self, checker) -> None:
        verdict = checker.check(_meta(_now(), gps=False, make=None, model=None), _now(), now=_now())
        assert verdict is not None
        assert not verdict.is_valid
        assert verdict.is_screenshot
        assert verdict.confidence == PRECHECK_CONFIDENCE

    def test_gps_alone_is_enough(self, checker) -> None:
        assert checker.check(_meta(_now(), make=None, model=None), _now(), now=_now()) is None

    def test_device_alone_is_enough(self, checker) -> None:
        assert checker.check(_meta(_now(), gps=False), _now(), now=_now()) is None

    def test_screenshot_model_signature(self, checker) -> None:
        verdict = checker.check(_meta(_now(), model="Screenshot Tool"), _now(), now=_now())
        assert verdict is not None and verdict.is_screenshot


class TestTiming:
    def test_too_old(self, checker) -> None:
        started = _now() - timedelta(minutes=10)
        verdict = checker.check(_meta(_now() - timedelta(seconds=301)), started, now=_now())
        assert verdict is not None
        assert "too old" in verdict.reasoning
        assert not verdict.is_screenshot

    def test_future_timestamp(self, checker) -> None:
        verdict = checker.check(_meta(_now() + timedelta(seconds=120)), _now(), now=_now())
        assert verdict is not None
        assert "future" in verdict.reasoning

    def test_precaptured(self, checker) -> None:
        started = _now()
        captured = started - timedelta(seconds=30)
        verdict = checker.check(_meta(captured), started, now=started + timedelta(seconds=20))
        assert verdict is not None
        assert verdict.reasoning.startswith("Pre-captured image")

    def test_precaptured_outranks_too_old(self, checker) -> None:
        started = _now()
        captured = started - timedelta(minutes=10)
        verdict = checker.check(_meta(captured), started, now=started + timedelta(seconds=5))
        assert verdict is not None
        assert verdict.reasoning.startswith("Pre-captured image")

    def test_precapture_tolerance(self, checker) -> None:
        started = _now()
        captured = started - timedelta(seconds=5)
        assert checker.check(_meta(captured), started, now=started + timedelta(seconds=20)) is None

    def test_missing_timestamp_skips_time_checks(self, checker) -> None:
        assert checker.check(_meta(None), _now(), now=_now()) is None

    def test_screenshot_checked_before_timing(self, checker) -> None:
        old = _now() - timedelta(days=1)
        verdict = checker.check(_meta(old, gps=False, make=None, model=None), _now(), now=_now())
        assert verdict is not None and verdict.is_screenshot
