"""recompiler CLI: rebuild verification artifacts from source bundles.

Usage:
    recompiler run <dir>                 Recompile one bundle directory
    recompiler batch <dir>...            Recompile many bundles, isolating failures
    recompiler fetch <version>           Download a native solc into the cache
    recompiler config                    Show current configuration
    recompiler --version                 Print version

Examples:
    recompiler run ./full_match/1/0x1234...abcd
    recompiler batch ./full_match/1/* --jobs 16 --out ./out
    recompiler --platform macosx-amd64 fetch 0.8.17+commit.8df45f5f
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from recompiler import __version__
from recompiler.compiler.invoker import CompilerInvoker
from recompiler.core.config import Settings, get_settings
from recompiler.core.errors import RecompilerError
from recompiler.core.logging import setup_logging
from recompiler.core.types import normalize_version
from recompiler.pipeline.orchestrator import ArtifactPipeline
from recompiler.verifier.bundle import BundleVerifier

# ── Coloured output helpers ──────────────────────────────────────────────────

_RESET = "\033[0m"
_BOLD = "\033[1m"
_RED = "\033[91m"
_GREEN = "\033[92m"
_DIM = "\033[2m"


def _c(text: str, code: str) -> str:
    return f"{code}{text}{_RESET}"


# ── CLI argument parser ─────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="recompiler",
        description="Recompile Solidity bundles into verification artifacts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="store_true", help="Print version and exit")
    parser.add_argument("--log-level", help="Override RECOMPILER_LOG_LEVEL")
    parser.add_argument("--json-logs", action="store_true", help="Emit structured JSON logs")
    parser.add_argument("--platform", help="Binary repository platform (default: linux-amd64)")
    parser.add_argument("--cache-dir", help="Directory for downloaded solc binaries")

    sub = parser.add_subparsers(dest="command")

    # ── run ──────────────────────────────────────────────────────────────────
    run_p = sub.add_parser("run", help="Recompile one bundle directory")
    run_p.add_argument("path", help="Bundle directory (metadata.json + sources)")
    run_p.add_argument("--out", "-o", help="Results directory (default: out)")
    run_p.add_argument(
        "--force-fallback",
        action="store_true",
        help="Compile with py-solc-x instead of the native binary repository",
    )

    # ── batch ────────────────────────────────────────────────────────────────
    batch_p = sub.add_parser("batch", help="Recompile many bundle directories")
    batch_p.add_argument("paths", nargs="+", help="Bundle directories")
    batch_p.add_argument("--out", "-o", help="Results directory (default: out)")
    batch_p.add_argument("--jobs", "-j", type=int, help="Concurrent targets (default: 4)")
    batch_p.add_argument("--force-fallback", action="store_true", help="See 'run --force-fallback'")

    # ── fetch ────────────────────────────────────────────────────────────────
    fetch_p = sub.add_parser("fetch", help="Download a native solc into the cache")
    fetch_p.add_argument("compiler_version", help="e.g. 0.8.17+commit.8df45f5f")

    # ── config ───────────────────────────────────────────────────────────────
    sub.add_parser("config", help="Show current configuration")

    return parser


def _settings_for(args: argparse.Namespace) -> Settings:
    settings = get_settings()
    overrides: dict[str, str] = {}
    if args.platform:
        overrides["platform"] = args.platform
    if args.cache_dir:
        overrides["cache_dir"] = args.cache_dir
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.json_logs:
        overrides["app_env"] = "production"
    return settings.model_copy(update=overrides) if overrides else settings


# ── Commands ─────────────────────────────────────────────────────────────────


async def _run_single(args: argparse.Namespace, settings: Settings) -> int:
    compiler = CompilerInvoker.from_settings(settings)
    pipeline = ArtifactPipeline(settings, BundleVerifier(args.force_fallback), compiler)
    out_dir = Path(args.out) if args.out else None
    try:
        path = await pipeline.run_target(Path(args.path), out_dir)
    except RecompilerError as exc:
        print(_c(f"✗ {exc.code.value}: {exc.message}", _RED), file=sys.stderr)
        return 1
    finally:
        await compiler.close()
    print(path)
    return 0


async def _run_batch(args: argparse.Namespace, settings: Settings) -> int:
    compiler = CompilerInvoker.from_settings(settings)
    pipeline = ArtifactPipeline(settings, BundleVerifier(args.force_fallback), compiler)
    out_dir = Path(args.out) if args.out else None
    try:
        report = await pipeline.run_batch([Path(p) for p in args.paths], out_dir, args.jobs)
    finally:
        await compiler.close()

    print(
        f"\n{_BOLD}Batch complete{_RESET}  "
        f"{_c(str(len(report.succeeded)) + ' ok', _GREEN)}  "
        f"{_c(str(len(report.failed)) + ' failed', _RED if report.failed else _DIM)}"
    )
    for target, error in sorted(report.failed.items()):
        print(f"  {_DIM}{target}{_RESET}  {error['code']}: {(error['message'].splitlines() or [''])[0]}")
    return 0 if report.ok else 1


async def _run_fetch(args: argparse.Namespace, settings: Settings) -> int:
    compiler = CompilerInvoker.from_settings(settings)
    version = normalize_version(args.compiler_version)
    try:
        path = await compiler.cache.resolve(settings.platform, version)
    finally:
        await compiler.close()
    if path is None:
        print(_c(f"✗ No native solc {version} for {settings.platform}", _RED), file=sys.stderr)
        return 1
    print(path)
    return 0


def _run_config(settings: Settings) -> int:
    """Print current settings."""
    print(json.dumps(settings.model_dump(), indent=2, default=str))
    return 0


# ── Entrypoint ───────────────────────────────────────────────────────────────


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"recompiler {__version__}")
        return 0

    if not args.command:
        parser.print_help()
        return 0

    settings = _settings_for(args)
    setup_logging(settings.app_env, settings.log_level)

    if args.command == "config":
        return _run_config(settings)

    if args.command == "run":
        return asyncio.run(_run_single(args, settings))

    if args.command == "batch":
        return asyncio.run(_run_batch(args, settings))

    if args.command == "fetch":
        return asyncio.run(_run_fetch(args, settings))

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
