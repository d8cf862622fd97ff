"""Anti-fraud pre-checks — cheap metadata heuristics run before the AI.

Ordered and short-circuiting; the first failing check decides:
1. Screenshot: no GPS and no device make/model, or a device model that
   looks like a screen capture.
2. Pre-capture: captured before the bounty started (beyond a small
   tolerance), i.e. the photo existed before the player knew the target.
3. Recency: captured too long ago, or too far in the future.

Pre-capture runs ahead of recency so a reused photo is reported as such
even when it is also older than the age limit.

These are heuristic signals. A photo with no capture time skips the
time-based checks rather than failing them.

Bypassing the checks is a policy object passed to the constructor. A
bypass policy is refused outright in a production environment.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from seek.errors import ConfigError
from seek.models.bounty import PhotoMetadata, VerificationResult


logger = logging.getLogger(__name__)

PRECHECK_CONFIDENCE = 0.9


@dataclass(frozen=True)
class PreCheckPolicy:
    """Which pre-checks run and with what thresholds."""
    enforce: bool = True
    max_photo_age_seconds: int = 300
    future_skew_seconds: int = 60
    precapture_tolerance_seconds: int = 10
    screenshot_signatures: tuple[str, ...] = ("screenshot", "screen", "capture")

    @classmethod
    def from_config(cls, config: dict, *, enforce: bool = True) -> PreCheckPolicy:
        return cls(
            enforce=enforce,
            max_photo_age_seconds=config.get("max_photo_age_seconds", 300),
            future_skew_seconds=config.get("future_skew_seconds", 60),
            precapture_tolerance_seconds=config.get("precapture_tolerance_seconds", 10),
            screenshot_signatures=tuple(
                config.get("screenshot_signatures", ("screenshot", "screen", "capture"))
            ),
        )

    @classmethod
    def bypass(cls) -> PreCheckPolicy:
        """Disable every pre-check. Only for low-trust test environments."""
        return cls(enforce=False)


class AntiFraudPreChecker:
    """Runs the ordered pre-checks over extracted photo metadata."""

    def __init__(self, policy: PreCheckPolicy, *, production: bool) -> None:
        if production and not policy.enforce:
            raise ConfigError("Pre-check bypass is not allowed in production")
        if not policy.enforce:
            logger.warning("Anti-fraud pre-checks are DISABLED by policy")
        self._policy = policy

    @property
    def policy(self) -> PreCheckPolicy:
        return self._policy

    def check(
        self,
        metadata: PhotoMetadata,
        bounty_created_utc: datetime,
        *,
        now: Optional[datetime] = None,
    ) -> Optional[VerificationResult]:
        """Return a failing verdict, or None if every check passed."""
        if not self._policy.enforce:
            return None
        now_utc = now or datetime.now(timezone.utc)

        for check in (self._check_screenshot, self._check_precapture, self._check_recency):
            verdict = check(metadata, bounty_created_utc, now_utc)
            if verdict is not None:
                logger.info("Pre-check rejected photo: %s", verdict.reasoning)
                return verdict
        return None

    # ------------------------------------------------------------------
    # Individual checks
    # ------------------------------------------------------------------

    def _check_screenshot(
        self,
        metadata: PhotoMetadata,
        bounty_created_utc: datetime,
        now: datetime,
    ) -> Optional[VerificationResult]:
        if not metadata.has_gps and not metadata.has_device:
            return _reject(
                "Screenshot suspected: photo carries neither GPS nor camera device metadata",
                is_screenshot=True,
                confidence=PRECHECK_CONFIDENCE,
            )
        model = (metadata.device_model or "").lower()
        for signature in self._policy.screenshot_signatures:
            if signature in model:
                return _reject(
                    f"Screenshot suspected: device model '{metadata.device_model}' "
                    f"indicates a screen capture",
                    is_screenshot=True,
                    confidence=PRECHECK_CONFIDENCE,
                )
        return None

    def _check_recency(
        self,
        metadata: PhotoMetadata,
        bounty_created_utc: datetime,
        now: datetime,
    ) -> Optional[VerificationResult]:
        captured = metadata.captured_utc
        if captured is None:
            return None
        age = (now - captured).total_seconds()
        if age > self._policy.max_photo_age_seconds:
            return _reject(
                f"Photo too old: captured {int(age)}s ago "
                f"(limit {self._policy.max_photo_age_seconds}s)"
            )
        if -age > self._policy.future_skew_seconds:
            return _reject(
                f"Photo timestamp is {int(-age)}s in the future "
                f"(limit {self._policy.future_skew_seconds}s)"
            )
        return None

    def _check_precapture(
        self,
        metadata: PhotoMetadata,
        bounty_created_utc: datetime,
        now: datetime,
    ) -> Optional[VerificationResult]:
        captured = metadata.captured_utc
        if captured is None:
            return None
        tolerance = timedelta(seconds=self._policy.precapture_tolerance_seconds)
        if captured < bounty_created_utc - tolerance:
            return _reject(
                "Pre-captured image: photo was taken before the bounty started "
                f"({captured.isoformat()} < {bounty_created_utc.isoformat()})"
            )
        return None


def _reject(
    reasoning: str,
    *,
    is_screenshot: bool = False,
    confidence: float = PRECHECK_CONFIDENCE,
) -> VerificationResult:
    return VerificationResult(
        is_valid=False,
        confidence=confidence,
        reasoning=reasoning,
        is_screenshot=is_screenshot,
        matches_target=False,
    )
