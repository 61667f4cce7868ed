"""
WordCard Command Line Interface

Runs the replica server, queries a running one, and performs offline
maintenance (dedupe, backup export/import) directly on the store file.
"""

from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
from typing import Optional

import httpx

from wordcard.cards.dedupe import DedupeMode
from wordcard.core.config import WordCardConfig
from wordcard.core.kernel import WordCardKernel
from wordcard.sync.backup import ImportMode


def _load_config(path: Optional[str]) -> WordCardConfig:
    if path:
        return WordCardConfig.from_file(Path(path))
    return WordCardConfig()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wordcard",
        description="WordCard replica and sync CLI",
    )
    parser.add_argument("--config", help="Path to a JSON config file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    server_parser = subparsers.add_parser("server", help="Start the replica server")
    server_parser.add_argument("--host", help="Host to bind to")
    server_parser.add_argument("--port", type=int, help="Port")

    status_parser = subparsers.add_parser("status", help="Get replica status")
    status_parser.add_argument("--url", default="http://localhost:8765", help="Server URL")

    trigger_parser = subparsers.add_parser("trigger", help="Force a sync check")
    trigger_parser.add_argument("name", help="Sync service name (lan, cloud)")
    trigger_parser.add_argument("--url", default="http://localhost:8765", help="Server URL")

    dedupe_parser = subparsers.add_parser("dedupe", help="Remove duplicate cards")
    dedupe_parser.add_argument(
        "--mode",
        choices=[m.value for m in DedupeMode],
        default=DedupeMode.CONTENT.value,
    )

    export_parser = subparsers.add_parser("export", help="Write a backup file")
    export_parser.add_argument("--dir", dest="directory", help="Target directory")

    import_parser = subparsers.add_parser("import", help="Import a backup file")
    import_parser.add_argument("path", help="Backup file")
    import_parser.add_argument(
        "--mode",
        choices=[m.value for m in ImportMode],
        default=ImportMode.SKIP_EXISTING.value,
    )
    return parser


def main(argv: Optional[list] = None) -> None:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return

    if args.command == "server":
        from wordcard.main import run_server
        run_server(host=args.host, port=args.port, config=_load_config(args.config))

    elif args.command == "status":
        asyncio.run(cmd_status(args.url))

    elif args.command == "trigger":
        asyncio.run(cmd_trigger(args.url, args.name))

    elif args.command == "dedupe":
        asyncio.run(cmd_dedupe(_load_config(args.config), DedupeMode(args.mode)))

    elif args.command == "export":
        directory = Path(args.directory) if args.directory else None
        asyncio.run(cmd_export(_load_config(args.config), directory))

    elif args.command == "import":
        asyncio.run(cmd_import(_load_config(args.config), Path(args.path), ImportMode(args.mode)))


def _offline_config(config: WordCardConfig) -> WordCardConfig:
    # Maintenance commands work on the store file only; no replication.
    return config.model_copy(
        update={
            "lan": config.lan.model_copy(update={"enabled": False}),
            "cloud": config.cloud.model_copy(update={"enabled": False}),
        }
    )


async def cmd_status(base_url: str) -> None:
    """Get replica status."""
    async with httpx.AsyncClient() as client:
        response = await client.get(f"{base_url}/status", timeout=10.0)

        if response.status_code == 200:
            print(json.dumps(response.json(), indent=2))
        else:
            print(f"Error: {response.status_code}")


async def cmd_trigger(base_url: str, name: str) -> None:
    """Ask a running replica to check a shared file now."""
    async with httpx.AsyncClient() as client:
        response = await client.post(f"{base_url}/sync/{name}/trigger", timeout=30.0)

        if response.status_code == 200:
            print(json.dumps(response.json(), indent=2))
        else:
            print(f"Error: {response.status_code}")
            print(response.text)


async def cmd_dedupe(config: WordCardConfig, mode: DedupeMode) -> None:
    async with WordCardKernel(_offline_config(config)) as kernel:
        result = await kernel.dedupe(mode)
    print(json.dumps({"mode": mode.value, **result.to_dict()}, indent=2))


async def cmd_export(config: WordCardConfig, directory: Optional[Path]) -> None:
    async with WordCardKernel(_offline_config(config)) as kernel:
        path = await kernel.export_backup(directory)
    print(f"Backup written to {path}")


async def cmd_import(config: WordCardConfig, path: Path, mode: ImportMode) -> None:
    async with WordCardKernel(_offline_config(config)) as kernel:
        result = await kernel.import_backup(path, mode)
    print(json.dumps({"mode": mode.value, **result.to_dict()}, indent=2))


if __name__ == "__main__":
    main()
