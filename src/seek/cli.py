"""Seek CLI — operator commands for the resolution backend.

Usage:
    python -m seek.cli check-config
    python -m seek.cli status
    python -m seek.cli finalizer-status
    python -m seek.cli clear-exhausted --ref 0xabc...
    python -m seek.cli run-workers
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from cryptography import x509

from seek.config import Settings, configure_logging
from seek.errors import ConfigError
from seek.identity.credential import Erc721CredentialProvider
from seek.missions.catalog import MissionCatalog
from seek.persistence.event_log import EventLog
from seek.policy import PolicyResolver
from seek.service import SeekService
from seek.settlement.contract import Web3SettlementContract
from seek.validation.precheck import PreCheckPolicy
from seek.validation.vision import GeminiVisionProvider


DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config"

logger = logging.getLogger(__name__)


def _make_service(config_dir: Path, env_file: Optional[Path] = None) -> SeekService:
    """Create a SeekService wired to the real chain, vision model and disk."""
    settings = Settings.from_env(env_file)
    configure_logging(settings.log_level)
    resolver = PolicyResolver.from_config_dir(config_dir)
    catalog = MissionCatalog.from_config_dir(config_dir)

    data_dir = settings.data_dir
    data_dir.mkdir(parents=True, exist_ok=True)

    roots: list[x509.Certificate] = []
    if settings.attestation_roots_path is not None:
        roots = x509.load_pem_x509_certificates(settings.attestation_roots_path.read_bytes())

    precheck = PreCheckPolicy.from_config(
        resolver.section("precheck"), enforce=settings.strict_prechecks
    )
    return SeekService(
        resolver,
        catalog,
        contract=Web3SettlementContract(
            settings.rpc_url,
            settings.settlement_contract_address,
            settings.authority_private_key,
            settings.chain_id,
        ),
        vision=GeminiVisionProvider(settings.gemini_api_key, settings.vision_model),
        credentials=Erc721CredentialProvider(
            settings.rpc_url, settings.credential_token_address
        ),
        contract_address=settings.settlement_contract_address,
        production=settings.is_production,
        precheck_policy=precheck,
        attestation_roots=roots,
        identity_config={
            "domain": settings.identity_domain,
            "uri": settings.identity_uri,
            "chain_id": settings.chain_id,
        },
        finalizer_storage=data_dir / "finalizer_queue.json",
        event_log=EventLog(storage_path=data_dir / "events.jsonl"),
    )


def cmd_check_config(args: argparse.Namespace) -> int:
    errors: list[str] = []
    try:
        resolver = PolicyResolver.from_config_dir(args.config)
        print(f"Protocol parameters OK (version {resolver.params.get('version')})")
    except ConfigError as exc:
        errors.append(str(exc))
    try:
        catalog = MissionCatalog.from_config_dir(args.config)
        print(f"Mission catalog OK ({len(catalog)} missions)")
    except ConfigError as exc:
        errors.append(str(exc))
    try:
        settings = Settings.from_env(args.env_file)
        print(f"Environment OK ({settings.environment})")
    except ConfigError as exc:
        errors.append(str(exc))

    for error in errors:
        print(f"ERROR: {error}", file=sys.stderr)
    return 1 if errors else 0


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.env_file)
    print(json.dumps(service.status(), indent=2))
    return 0


def cmd_finalizer_status(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.env_file)
    print(json.dumps(service.finalizer_status(), indent=2))
    return 0


def cmd_clear_exhausted(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.env_file)
    if service.clear_exhausted(args.ref):
        print(f"Cleared exhausted finalization {args.ref}")
        return 0
    print(f"No exhausted finalization for {args.ref}", file=sys.stderr)
    return 1


def cmd_run_workers(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.env_file)
    scheduler = service.build_scheduler()
    logger.info("Background workers running; Ctrl-C to stop")
    try:
        scheduler.run_forever(tick_seconds=args.tick)
    except KeyboardInterrupt:
        scheduler.stop()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="seek",
        description="Seek protocol resolution backend",
    )
    parser.add_argument(
        "--config", type=Path, default=DEFAULT_CONFIG,
        help="Path to config directory (default: repo config/)",
    )
    parser.add_argument(
        "--env-file", type=Path, default=None,
        help="Optional .env file to load before reading the environment",
    )
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("check-config", help="Validate parameters, catalog and environment")
    sub.add_parser("status", help="Show service status")
    sub.add_parser("finalizer-status", help="Show pending and exhausted finalizations")

    p_clear = sub.add_parser("clear-exhausted", help="Acknowledge a manually settled finalization")
    p_clear.add_argument("--ref", required=True, help="Settlement reference (0x...)")

    p_run = sub.add_parser("run-workers", help="Run expiry, purge, finalization and nonce sweeps")
    p_run.add_argument("--tick", type=float, default=1.0, help="Scheduler tick in seconds")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "check-config": cmd_check_config,
        "status": cmd_status,
        "finalizer-status": cmd_finalizer_status,
        "clear-exhausted": cmd_clear_exhausted,
        "run-workers": cmd_run_workers,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    try:
        return handler(args)
    except ConfigError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
