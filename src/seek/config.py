"""Deployment settings — environment variables and logging setup.

Protocol constants live in config/protocol_params.json (see seek.policy).
This module only carries what differs per deployment: endpoints, keys,
addresses, the environment name and the data directory. Values are read
from the process environment after loading an optional ``.env`` file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from seek.errors import ConfigError


PRODUCTION = "production"

_REQUIRED = (
    "RPC_URL",
    "AUTHORITY_PRIVATE_KEY",
    "SETTLEMENT_CONTRACT_ADDRESS",
    "CREDENTIAL_TOKEN_ADDRESS",
    "GEMINI_API_KEY",
)

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    environment: str
    rpc_url: str
    authority_private_key: str
    settlement_contract_address: str
    credential_token_address: str
    chain_id: int
    gemini_api_key: str
    vision_model: str
    strict_prechecks: bool
    identity_domain: str
    identity_uri: str
    data_dir: Path
    log_level: str
    attestation_roots_path: Optional[Path] = None

    @property
    def is_production(self) -> bool:
        return self.environment == PRODUCTION

    def __repr__(self) -> str:
        return (
            f"Settings(environment={self.environment!r}, rpc_url={self.rpc_url!r}, "
            f"chain_id={self.chain_id}, data_dir={str(self.data_dir)!r})"
        )

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> Settings:
        """Load settings from the environment, after an optional .env file.

        Raises:
            ConfigError: Listing every missing required variable at once.
        """
        load_dotenv(env_file)
        missing = [name for name in _REQUIRED if not os.getenv(name)]
        if missing:
            raise ConfigError(
                "Missing required environment variables: " + ", ".join(missing)
            )

        chain_id_raw = os.getenv("CHAIN_ID", "11155111")
        try:
            chain_id = int(chain_id_raw)
        except ValueError as exc:
            raise ConfigError(f"CHAIN_ID must be an integer, got {chain_id_raw!r}") from exc

        return cls(
            environment=os.getenv("SEEK_ENV", "development").strip().lower(),
            rpc_url=os.environ["RPC_URL"],
            authority_private_key=os.environ["AUTHORITY_PRIVATE_KEY"],
            settlement_contract_address=os.environ["SETTLEMENT_CONTRACT_ADDRESS"],
            credential_token_address=os.environ["CREDENTIAL_TOKEN_ADDRESS"],
            chain_id=chain_id,
            gemini_api_key=os.environ["GEMINI_API_KEY"],
            vision_model=os.getenv("VISION_MODEL", "gemini-1.5-flash"),
            strict_prechecks=os.getenv("STRICT_PRECHECKS", "true").strip().lower() in _TRUTHY,
            identity_domain=os.getenv("IDENTITY_DOMAIN", "seek.app"),
            identity_uri=os.getenv("IDENTITY_URI", "https://seek.app"),
            data_dir=Path(os.getenv("DATA_DIR", "data")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            attestation_roots_path=(
                Path(os.environ["ATTESTATION_ROOTS_PEM"])
                if os.getenv("ATTESTATION_ROOTS_PEM") else None
            ),
        )


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for CLI and worker processes."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s :: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )
