"""HTTP-facing handlers, independent of any web framework.

Each handler takes already-parsed request data and returns
``(status_code, body)`` where body is the JSON envelope
``{"success": bool, "data": ..., "error": ...}``. A web framework only
has to route requests here and serialize the result.

Routes:
    POST /identity/nonce            post_identity_nonce
    POST /identity/verify           post_identity_verify
    GET  /identity/status/{wallet}  get_identity_status
    POST /bounty/start              post_bounty_start
    POST /bounty/submit             post_bounty_submit
    GET  /bounty/{id}               get_bounty
    GET  /bounty/player/{wallet}    get_player_bounty
    POST /attestation/nonce         post_attestation_nonce
    GET  /health/stats              get_stats
"""

from __future__ import annotations

import base64
import binascii
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from seek.errors import PreconditionError, ValidationError
from seek.models.attestation import (
    AttestationKind,
    AttestationPayload,
    HardwareAttestation,
    StandardAttestation,
)
from seek.service import SeekService, ServiceResult


logger = logging.getLogger(__name__)

Response = tuple[int, dict[str, Any]]

_STATUS_BY_CODE = {
    "validation": 400,
    "forbidden": 403,
    "not_found": 404,
    "conflict": 409,
    "sybil": 409,
    "settlement": 502,
}


def _respond(result: ServiceResult) -> Response:
    if result.success:
        return 200, {"success": True, "data": result.data}
    status = _STATUS_BY_CODE.get(result.code or "", 500)
    body: dict[str, Any] = {"success": False, "error": "; ".join(result.errors)}
    if result.code:
        body["code"] = result.code
    if result.code in ("forbidden", "sybil") and result.data:
        body["data"] = result.data
    return status, body


def _bad_request(message: str) -> Response:
    return 400, {"success": False, "error": message, "code": "validation"}


def _require_str(body: dict[str, Any], key: str) -> str:
    value = body.get(key)
    if not isinstance(value, str) or not value:
        raise ValidationError(f"Missing or invalid field: {key}")
    return value


class SeekApi:
    """Request handlers over a SeekService."""

    def __init__(self, service: SeekService) -> None:
        self._service = service

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def post_identity_nonce(self, body: dict[str, Any]) -> Response:
        try:
            wallet = _require_str(body, "wallet")
        except ValidationError as exc:
            return _bad_request(str(exc))
        return _respond(self._service.request_identity_nonce(wallet))

    def post_identity_verify(self, body: dict[str, Any]) -> Response:
        try:
            wallet = _require_str(body, "wallet")
            signature = _require_str(body, "signature")
            message = _require_str(body, "message")
        except ValidationError as exc:
            return _bad_request(str(exc))
        return _respond(self._service.verify_identity(wallet, signature, message))

    def get_identity_status(self, wallet: str) -> Response:
        return _respond(self._service.identity_status(wallet))

    # ------------------------------------------------------------------
    # Bounties
    # ------------------------------------------------------------------

    def post_bounty_start(self, body: dict[str, Any]) -> Response:
        try:
            wallet = _require_str(body, "wallet")
            tier = _parse_tier(body.get("tier"))
        except ValidationError as exc:
            return _bad_request(str(exc))
        start_tx = body.get("start_tx_ref")
        return self._guarded(
            lambda: self._service.start_bounty(
                wallet, tier, start_tx_ref=start_tx if isinstance(start_tx, str) else None
            )
        )

    def post_bounty_submit(
        self,
        form: dict[str, Any],
        photo_bytes: bytes,
        mime_type: str,
    ) -> Response:
        try:
            bounty_id = _require_str(form, "bounty_id")
            wallet = _require_str(form, "wallet")
            attestation = parse_attestation(form.get("attestation"))
        except ValidationError as exc:
            return _bad_request(str(exc))
        return self._guarded(
            lambda: self._service.submit_photo(
                bounty_id, wallet, photo_bytes, mime_type, attestation=attestation
            )
        )

    def get_bounty(self, bounty_id: str) -> Response:
        return _respond(self._service.get_bounty(bounty_id))

    def get_player_bounty(self, wallet: str) -> Response:
        return _respond(self._service.get_player_bounty(wallet))

    def post_attestation_nonce(self) -> Response:
        return _respond(self._service.issue_attestation_nonce())

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def get_stats(self) -> Response:
        return 200, {"success": True, "data": self._service.status()}

    def _guarded(self, call: Callable[[], ServiceResult]) -> Response:
        try:
            return _respond(call())
        except PreconditionError:
            logger.exception("Integrity fault while handling request")
            return 500, {"success": False, "error": "Internal error", "code": "precondition"}


# ---------------------------------------------------------------------------
# Request parsing
# ---------------------------------------------------------------------------

def _parse_tier(raw: Any) -> int:
    if isinstance(raw, bool):
        raise ValidationError("Tier must be 1, 2 or 3")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    raise ValidationError("Tier must be 1, 2 or 3")


def parse_attestation(raw: Optional[dict[str, Any]]) -> Optional[AttestationPayload]:
    """Build an attestation payload from its JSON form (None if absent).

    Raises:
        ValidationError: On an unknown kind or malformed field.
    """
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ValidationError("Attestation must be an object")
    try:
        kind = AttestationKind(raw.get("kind", AttestationKind.STANDARD.value))
        captured = datetime.fromtimestamp(int(raw["captured_ms"]) / 1000, tz=timezone.utc)
        photo_hash = str(raw["photo_hash"])
        device_model = raw.get("device_model")
        if device_model is not None and not isinstance(device_model, str):
            raise ValidationError("Malformed attestation: device_model must be a string")
        if kind == AttestationKind.STANDARD:
            return StandardAttestation(
                photo_hash=photo_hash,
                captured_utc=captured,
                device_model=device_model,
            )
        chain = raw["certificate_chain"]
        if not isinstance(chain, list) or not all(isinstance(pem, str) for pem in chain):
            raise ValidationError("Malformed attestation: certificate_chain must be a list of PEM strings")
        return HardwareAttestation(
            photo_hash=photo_hash,
            captured_utc=captured,
            signature=base64.b64decode(raw["signature"], validate=True),
            certificate_chain=tuple(chain),
            nonce=str(raw["nonce"]),
            device_model=device_model,
        )
    except (KeyError, TypeError, ValueError, binascii.Error, OverflowError) as exc:
        raise ValidationError(f"Malformed attestation: {exc}") from exc
