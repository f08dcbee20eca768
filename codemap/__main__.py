"""
codemap command line.

Administrative access to the same HybridStorage the API uses:

    python -m codemap compress '{"error": "boom"}'
    python -m codemap decompress <key>
    python -m codemap list
    python -m codemap delete <key>
    python -m codemap purge-expired
    python -m codemap health
"""

import argparse
import asyncio
import dataclasses
import json
import sys
from typing import List, Optional

from codemap.exceptions import InvalidPayload, StorageError
from codemap.service import CodeMapService
from codemap.storage import HybridStorage, open_storage
from codemap.utils.config import STORAGE_BACKENDS, AppConfig
from codemap.utils.logging import get_logger, setup_logging

logger = get_logger("codemap.cli")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Args:
        argv: Argument list, defaults to sys.argv[1:]

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        prog="codemap",
        description="Content-addressed payload storage",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )

    parser.add_argument(
        "--backend",
        type=str,
        default=None,
        choices=list(STORAGE_BACKENDS),
        help="Storage backend (overrides STORAGE_BACKEND env var)",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    compress = commands.add_parser("compress", help="Store a payload and print its key")
    compress.add_argument("payload", help="Payload to store, or - to read it from stdin")

    decompress = commands.add_parser("decompress", help="Print the payload stored under a key")
    decompress.add_argument("key")

    commands.add_parser("list", help="List unexpired replica records as JSON")

    delete = commands.add_parser("delete", help="Remove a key from every backend")
    delete.add_argument("key")

    commands.add_parser("purge-expired", help="Delete expired replica records")
    commands.add_parser("health", help="Ping the backends and print a health report")

    return parser.parse_args(argv)


async def run_command(args: argparse.Namespace, storage: HybridStorage) -> int:
    """Execute one command against an open storage and return the exit code."""
    service = CodeMapService(storage)

    if args.command == "compress":
        payload = sys.stdin.read() if args.payload == "-" else args.payload
        print(await service.compress(payload))
        return 0

    if args.command == "decompress":
        original = await service.decompress(args.key)
        if original is None:
            print("short code not found", file=sys.stderr)
            return 1
        print(original)
        return 0

    if args.command == "list":
        records = await storage.list()
        print(json.dumps([record.to_dict() for record in records], indent=2))
        return 0

    if args.command == "delete":
        await storage.delete(args.key)
        return 0

    if args.command == "purge-expired":
        print(await storage.purge_expired())
        return 0

    if args.command == "health":
        report = await storage.health()
        print(json.dumps(
            {
                "status": report.status,
                "timestamp": report.timestamp.isoformat(),
                "backends": [dataclasses.asdict(backend) for backend in report.backends],
            },
            indent=2,
        ))
        return 0 if report.status != "unhealthy" else 1

    raise ValueError(f"Unknown command: {args.command}")


async def _run(args: argparse.Namespace, config: AppConfig) -> int:
    storage = await open_storage(config)
    try:
        return await run_command(args, storage)
    finally:
        await storage.close()


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the codemap CLI.

    Returns:
        Exit code (0 for success, 1 for not found or failure)
    """
    args = parse_args(argv)
    setup_logging(args.log_level, stream=sys.stderr)

    try:
        config = AppConfig.from_env()
        if args.backend:
            config = dataclasses.replace(config, backend=args.backend)
        return asyncio.run(_run(args, config))

    except InvalidPayload as e:
        print(str(e), file=sys.stderr)
        return 1

    except StorageError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1

    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, exiting...")
        return 1


if __name__ == "__main__":
    sys.exit(main())
