"""Photo validation — metadata, pre-checks, AI adjudication, attestation."""

from seek.validation.adjudicator import Adjudicator
from seek.validation.attestation import DeviceAttestationVerifier
from seek.validation.image import validate_image
from seek.validation.metadata import PillowMetadataExtractor
from seek.validation.precheck import AntiFraudPreChecker, PreCheckPolicy

__all__ = [
    "Adjudicator",
    "AntiFraudPreChecker",
    "DeviceAttestationVerifier",
    "PillowMetadataExtractor",
    "PreCheckPolicy",
    "validate_image",
]
