#!/usr/bin/env python3
"""
main.py
Vaultline – Command-line entry point

Imports personal-data export archives into the encrypted vault and reads
the resulting timeline back.

Usage:
    vaultline import <provider> <archive-or-url>... [--profile NAME]
    vaultline reset <provider>
    vaultline providers
    vaultline files <provider>
    vaultline timeline <provider> [--limit N]
    vaultline show <provider> <slug>
    vaultline expire

Examples:
    vaultline import github ~/Downloads/github-export.tar.gz
    vaultline timeline github --limit 20
    vaultline --data-dir /tmp/vault providers
"""

import argparse
import json
import sys
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from vaultline.config import VaultConfig
from vaultline.ingest import IngestError, ImportResult, input_from_arg
from vaultline.manager import Vault
from vaultline.providers import PROVIDERS, get_provider
from vaultline.store import StoreError


# ============================================================
# Import Statistics
# ============================================================

@dataclass
class ImportStats:
    """Statistics collected during one import."""
    load_time: float = 0.0
    import_time: float = 0.0
    total_time: float = 0.0

    inputs: int = 0
    input_bytes: int = 0
    result: Optional[ImportResult] = None

    def print_summary(self):
        """Print a formatted summary of the import."""
        result = self.result or ImportResult()
        print("\n" + "=" * 70)
        print("IMPORT SUMMARY")
        print("=" * 70)

        print("\nStage Timings:")
        print(f"  Load:       {self.load_time:>8.2f}s  ({self.inputs} inputs, {self.input_bytes/1024/1024:.1f} MB)")
        print(f"  Import:     {self.import_time:>8.2f}s  ({result.files} files, {result.timeline_entries} entries)")
        print(f"  {'─' * 40}")
        print(f"  Total:      {self.total_time:>8.2f}s")

        if result.errors:
            print(f"\n  Files with parse errors: {result.errors}")
        if result.failures:
            print("\n  Unreadable inputs:")
            for failure in result.failures:
                print(f"    {failure}")

        status = "✓ Complete" if not result.failures else "✓ Complete (with failures)"
        print(f"\nImport Status: {status}")
        print("=" * 70)


def _progress_printer():
    last = [-1]

    def report(fraction: float):
        percent = int(fraction * 100)
        if percent // 10 != last[0] // 10:
            last[0] = percent
            print(f"  {percent:3d}%")

    return report


# ============================================================
# Commands
# ============================================================

def cmd_import(vault: Vault, args) -> int:
    provider = get_provider(args.provider)
    stats = ImportStats()
    start = time.time()

    print("\n" + "=" * 70)
    print("STAGE 1: LOAD")
    print("=" * 70)
    inputs = [input_from_arg(arg) for arg in args.inputs]
    stats.inputs = len(inputs)
    stats.input_bytes = sum(i.size for i in inputs)
    stats.load_time = time.time() - start
    print(f"\n✓ Loaded {len(inputs)} inputs ({stats.input_bytes/1024/1024:.1f} MB) in {stats.load_time:.2f}s")

    print("\n" + "=" * 70)
    print(f"STAGE 2: IMPORT ({provider.display_name})")
    print("=" * 70 + "\n")
    middle = time.time()
    on_progress = _progress_printer() if vault.config.verbose else None
    stats.result = vault.import_files(provider, inputs, on_progress=on_progress, profile=args.profile)
    stats.import_time = time.time() - middle

    stats.total_time = time.time() - start
    stats.print_summary()
    return 0


def cmd_reset(vault: Vault, args) -> int:
    provider = get_provider(args.provider)
    vault.reset_provider(provider)
    print(f"✓ Reset {provider.display_name}")
    return 0


def cmd_providers(vault: Vault, args) -> int:
    imported = vault.get_providers()
    for slug, provider in sorted(PROVIDERS.items()):
        mark = "✓" if slug in imported else " "
        print(f"  {mark} {slug:15s} {provider.display_name}")
    return 0


def cmd_files(vault: Vault, args) -> int:
    files = vault.get_files(args.provider)
    for f in files:
        note = f.skipped or f.status or ""
        errors = f"  ({len(f.errors)} errors)" if f.errors else ""
        print(f"  {f.slug}  {note:8s}  {f.joined_path}{errors}")
    print(f"\n{len(files)} files")
    return 0


def _format_time(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def cmd_timeline(vault: Vault, args) -> int:
    provider = get_provider(args.provider)
    entries = sorted(vault.get_timeline_entries(provider), key=lambda e: e.timestamp, reverse=True)
    if args.limit:
        entries = entries[:args.limit]
    for key in entries:
        entry = vault.hydrate_timeline_entry(provider, key)
        category = provider.categories.get(key.category)
        icon = category.icon if category else "·"
        context = entry.context if entry else None
        if isinstance(context, (tuple, list)):
            context = " | ".join(str(c) for c in context if c)
        print(f"  {_format_time(key.timestamp)}  {icon}  {context or ''}  [{key.slug}]")
    return 0


def cmd_show(vault: Vault, args) -> int:
    entry = vault.get_timeline_entry_by_slug(args.provider, args.slug)
    if entry is None:
        print(f"Error: No timeline entry {args.slug!r}", file=sys.stderr)
        return 1
    print(f"  File:     {'/'.join(entry.file)}")
    print(f"  Time:     {_format_time(entry.timestamp)}")
    print(f"  Category: {getattr(entry.category, 'value', entry.category)}")
    print(json.dumps(entry.value, indent=2, ensure_ascii=False))
    return 0


def cmd_expire(vault: Vault, args) -> int:
    if vault.maybe_expire():
        print("✓ Store expired and wiped")
    else:
        print("✓ Store is current")
    return 0


COMMANDS = {
    "import": cmd_import,
    "reset": cmd_reset,
    "providers": cmd_providers,
    "files": cmd_files,
    "timeline": cmd_timeline,
    "show": cmd_show,
    "expire": cmd_expire,
}


# ============================================================
# CLI Interface
# ============================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vaultline",
        description="Vaultline - encrypted personal-data timeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s import github ~/Downloads/github-export.tar.gz
  %(prog)s timeline github --limit 20
  %(prog)s reset github
        """
    )
    parser.add_argument(
        "--data-dir",
        help="Vault directory (default: ~/.vaultline)"
    )
    parser.add_argument(
        "--max-file-size",
        type=int,
        help="Largest file to store, in bytes (default: 128MB)"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Only print results"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("import", help="Import export archives for a provider")
    p.add_argument("provider")
    p.add_argument("inputs", nargs="+", help="Archive paths or http(s) URLs")
    p.add_argument("--profile", help="Only import records for this account profile")

    p = sub.add_parser("reset", help="Delete a provider's data")
    p.add_argument("provider")

    sub.add_parser("providers", help="List providers and which have data")

    p = sub.add_parser("files", help="List a provider's imported files")
    p.add_argument("provider")

    p = sub.add_parser("timeline", help="Print a provider's timeline, newest first")
    p.add_argument("provider")
    p.add_argument("--limit", "-n", type=int, default=50)

    p = sub.add_parser("show", help="Print one timeline entry")
    p.add_argument("provider")
    p.add_argument("slug")

    sub.add_parser("expire", help="Wipe the store if its key has expired")

    return parser


def main(argv=None) -> int:
    """Main entry point with CLI argument parsing."""
    args = build_parser().parse_args(argv)

    overrides = {"verbose": not args.quiet}
    if args.data_dir:
        overrides["data_dir"] = args.data_dir
    if args.max_file_size:
        overrides["max_file_size"] = args.max_file_size
    config = VaultConfig(**overrides)

    try:
        with Vault(config) as vault:
            return COMMANDS[args.command](vault, args)
    except (IngestError, StoreError, KeyError) as e:
        print(f"\n✗ {args.command} failed: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
