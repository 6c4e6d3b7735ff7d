"""
kyc-flow CLI

Operator commands against the verification backends: health probe, ID-type
catalog, session lookup and final result.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from . import __version__
from .client import ClientContext, VerificationClient
from .errors import KYCError
from .logging_config import redact, setup_logging
from .main import Credentials, EvidenceData, FlowConfig


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        prog="kyc-flow",
        description="kyc-flow - identity verification backend tools",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("health", help="Probe the evidence service")

    id_types_parser = subparsers.add_parser("id-types", help="List supported ID types")
    id_types_parser.add_argument("--session-id", help="Session to query the catalog for")
    id_types_parser.add_argument("--token", help="Session token")

    session_parser = subparsers.add_parser("session", help="Show session status")
    session_parser.add_argument("session_id", help="Session ID")

    result_parser = subparsers.add_parser("result", help="Fetch the final verification result")
    result_parser.add_argument("session_id", help="Session ID")
    result_parser.add_argument("--token", help="Session token")

    parser.add_argument(
        "--verbose", "-v",
        action="count",
        default=0,
        help="Increase verbosity",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Quiet mode",
    )
    parser.add_argument(
        "--log-file",
        help="Log to file",
    )
    parser.add_argument(
        "--config",
        help="Config file path",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output",
    )

    return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> FlowConfig:
    if args.config and Path(args.config).exists():
        return FlowConfig.from_yaml(args.config)
    return FlowConfig.from_env()


def _print(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def run_command(args: argparse.Namespace, client: VerificationClient) -> int:
    if args.command == "health":
        healthy = await client.probe()
        _print({"healthy": healthy, "api_base_url": client.config.api_base_url})
        return 0 if healthy else 1

    if args.command == "id-types":
        id_types = await client.list_id_types(args.session_id, args.token)
        _print([id_type.to_dict() for id_type in id_types])
        return 0

    if args.command == "session":
        session = await client.get_session(args.session_id)
        _print(session.to_dict())
        return 0

    if args.command == "result":
        result = await client.complete_verification(args.session_id, EvidenceData(), token=args.token)
        _print(result.to_dict())
        return 0

    print("Use --help for usage information")
    return 1


def main(argv=None) -> int:
    """Main entry point"""
    args = parse_args(argv)

    log_level = "DEBUG" if args.verbose >= 2 else ("INFO" if args.verbose >= 1 else "WARNING")
    if args.quiet:
        log_level = "ERROR"

    credentials = Credentials.from_env()
    secrets = [credentials.api_key, credentials.session_token, getattr(args, "token", None)]
    setup_logging(
        level=log_level,
        log_file=args.log_file,
        use_colors=not args.no_color,
        secrets=secrets,
    )

    config = load_config(args)
    client = VerificationClient(ClientContext(config=config, credentials=credentials))

    try:
        return asyncio.run(run_command(args, client))
    except KYCError as e:
        print(redact(f"Error ({e.code}): {e.message}", secrets), file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
