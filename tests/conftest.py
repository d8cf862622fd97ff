"""Shared fixtures: policy, catalog, collaborator fakes, real JPEG bytes."""

from __future__ import annotations

import io
import json
import random
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import pytest
from PIL import Image

from seek.errors import SettlementError
from seek.missions.catalog import MissionCatalog
from seek.models.bounty import FinalizationReceipt, Mission, PhotoMetadata
from seek.policy import PolicyResolver
from seek.service import SeekService


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"
CONTRACT_ADDRESS = "0x" + "c0" * 20


def _now() -> datetime:
    return datetime(2026, 2, 16, 12, 0, 0, tzinfo=timezone.utc)


def make_jpeg(
    *,
    make: Optional[str] = None,
    model: Optional[str] = None,
    taken: Optional[str] = None,
    size: int = 160,
    seed: int = 7,
) -> bytes:
    """Noise JPEG (well above 10 KB) with optional IFD0 EXIF tags."""
    rng = random.Random(seed)
    img = Image.frombytes("RGB", (size, size), bytes(rng.getrandbits(8) for _ in range(size * size * 3)))
    exif = Image.Exif()
    if make:
        exif[0x010F] = make
    if model:
        exif[0x0110] = model
    if taken:
        exif[0x0132] = taken
    extra = {"exif": exif.tobytes()} if len(exif) else {}
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=95, **extra)
    return buf.getvalue()


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeContract:
    """Records calls; failures are scripted per method."""

    def __init__(self) -> None:
        self.reveals: list[tuple[str, bytes, bytes]] = []
        self.proposals: list[tuple[str, bool]] = []
        self.finalize_calls: list[str] = []
        self.fail_reveal = 0
        self.fail_propose = 0
        self.finalize_script: list[object] = []  # exceptions to raise, in order
        self.jackpot = False

    def reveal_mission(self, settlement_ref: str, mission_digest: bytes, salt: bytes) -> str:
        if self.fail_reveal:
            self.fail_reveal -= 1
            raise SettlementError("reveal RPC unavailable")
        self.reveals.append((settlement_ref, mission_digest, salt))
        return f"0xreveal{len(self.reveals)}"

    def propose_resolution(self, settlement_ref: str, success: bool) -> str:
        if self.fail_propose:
            self.fail_propose -= 1
            raise SettlementError("propose RPC unavailable")
        self.proposals.append((settlement_ref, success))
        return f"0xpropose{len(self.proposals)}"

    def finalize_bounty(self, settlement_ref: str) -> FinalizationReceipt:
        self.finalize_calls.append(settlement_ref)
        if self.finalize_script:
            outcome = self.finalize_script.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
        return FinalizationReceipt(tx_ref=f"0xfinal{len(self.finalize_calls)}", jackpot_won=self.jackpot)


class FakeVision:
    """Returns a canned response (or raises) and counts calls."""

    def __init__(self, response: str = "") -> None:
        self.response = response or json.dumps({
            "isValid": True,
            "confidence": 0.95,
            "reasoning": "A red mug on a wooden table",
            "detectedObjects": ["mug", "table"],
            "isScreenshot": False,
            "matchesTarget": True,
        })
        self.error: Optional[Exception] = None
        self.calls = 0
        self.last_prompt = ""

    def analyze(self, image_bytes: bytes, mime_type: str, prompt: str) -> str:
        self.calls += 1
        self.last_prompt = prompt
        if self.error is not None:
            raise self.error
        return self.response


class FakeCredentials:
    def __init__(self, tokens: Optional[dict[str, str]] = None) -> None:
        self.tokens = {k.lower(): v for k, v in (tokens or {}).items()}
        self.error: Optional[Exception] = None
        self.calls = 0

    def find_credential(self, wallet: str) -> Optional[str]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.tokens.get(wallet.lower())


class FakeExtractor:
    """Metadata extractor returning whatever the test sets."""

    def __init__(self, metadata: Optional[PhotoMetadata] = None) -> None:
        self.metadata = metadata or PhotoMetadata()

    def extract(self, photo_bytes: bytes) -> PhotoMetadata:
        return self.metadata


def camera_metadata(captured: datetime) -> PhotoMetadata:
    return PhotoMetadata(
        captured_utc=captured,
        latitude=40.7128,
        longitude=-74.0060,
        device_make="Google",
        device_model="Pixel 8",
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def resolver() -> PolicyResolver:
    return PolicyResolver.from_config_dir(CONFIG_DIR)


@pytest.fixture
def catalog() -> MissionCatalog:
    return MissionCatalog([
        Mission("m1", 1, "A red mug", ("mug", "red"), "easy"),
        Mission("m2", 2, "A bicycle", ("bicycle", "bike"), "medium"),
        Mission("m3", 3, "A yellow car", ("yellow", "car"), "hard"),
    ])


@pytest.fixture
def contract() -> FakeContract:
    return FakeContract()


@pytest.fixture
def vision() -> FakeVision:
    return FakeVision()


@pytest.fixture
def credentials() -> FakeCredentials:
    return FakeCredentials()


@pytest.fixture
def extractor() -> FakeExtractor:
    return FakeExtractor(camera_metadata(_now()))


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_jpeg(make="Google", model="Pixel 8")


@pytest.fixture
def now() -> datetime:
    return _now()


@pytest.fixture
def later():
    def _later(seconds: float) -> datetime:
        return _now() + timedelta(seconds=seconds)
    return _later


@pytest.fixture
def jpeg_factory():
    return make_jpeg


@pytest.fixture
def metadata_at():
    return camera_metadata


@pytest.fixture
def service_factory(resolver, catalog, contract, vision, credentials, extractor):
    """Build a SeekService over the shared fakes; keyword overrides win."""
    def _build(**overrides) -> SeekService:
        kwargs = {
            "contract": contract,
            "vision": vision,
            "credentials": credentials,
            "contract_address": CONTRACT_ADDRESS,
            "metadata_extractor": extractor,
        }
        kwargs.update(overrides)
        return SeekService(resolver, catalog, **kwargs)
    return _build
