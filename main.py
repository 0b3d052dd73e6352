"""
main.py — Ergodic Entry Point

Usage:
    python main.py                          # interactive REPL, default settings
    python main.py jump                     # open one random note and exit
    python main.py --vault ~/notes          # override vault.path
    python main.py --log-level DEBUG        # verbose logging
    python main.py --config path/to/config.yaml
"""

from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root before settings are read
ENV_PATH = Path(__file__).parent / ".env"
load_dotenv(dotenv_path=ENV_PATH)

import argparse
import asyncio
import sys


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ergodic",
        description="Ergodic — random walks through a Markdown vault",
    )
    parser.add_argument(
        "subcommand",
        nargs="?",
        choices=["jump"],
        default=None,
        help="'jump' — open one random note and exit. Omit to start the REPL.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: $ERGODIC_CONFIG or config/config.yaml)",
    )
    parser.add_argument(
        "--vault",
        default=None,
        help="Vault folder to walk (overrides vault.path)",
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Walk interval in seconds (overrides walk.jump_interval_s; 0 disables)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override log level from config",
    )
    return parser.parse_args(argv)


def bootstrap(args: argparse.Namespace):
    """
    Load config, apply CLI overrides, validate, and set up logging.
    Returns (settings, log) ready for use.

    Exits with code 1 (after printing a clear message) if:
      - config.yaml has invalid values (Pydantic ValidationError)
      - filesystem problems are found (ConfigError from validate_all())
    """
    from config.settings import load_settings, ConfigError, WalkSettings
    from observability.logger import setup_logging, get_logger
    from pydantic import ValidationError

    try:
        settings = load_settings(args.config)
        if args.vault is not None:
            settings.vault.path = args.vault
        if args.interval is not None:
            settings.walk = WalkSettings(
                jump_interval_s=args.interval,
                show_timer_bar=settings.walk.show_timer_bar,
            )
    except ValidationError as exc:
        problems = "\n".join(
            f"  • {e['loc'][-1] if e['loc'] else '?'}: {e['msg']}"
            for e in exc.errors()
        )
        print(
            f"\n❌  Config validation failed:\n\n{problems}\n\n"
            f"    Fix config/config.yaml or your .env file and restart.\n",
            file=sys.stderr,
        )
        sys.exit(1)
    except OSError as exc:
        print(
            f"\n❌  Failed to load config: {type(exc).__name__}: {exc}\n",
            file=sys.stderr,
        )
        sys.exit(1)

    try:
        settings.validate_all()
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(1)

    setup_logging(
        level=args.log_level or settings.log_level,
        log_dir=settings.log_dir,
        json_format=settings.log_json_format,
        console_output=settings.log_console_output,
        max_bytes=settings.logging.max_file_size_mb * 1024 * 1024,
        backup_count=settings.logging.backup_count,
    )

    log = get_logger("ergodic.main")
    return settings, log


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings, log = bootstrap(args)

    log.info(
        "ergodic.starting",
        subcommand=args.subcommand,
        vault=str(settings.vault_path),
        interval_s=settings.walk.jump_interval_s,
    )

    if args.subcommand == "jump":
        from interfaces.cli import run_single_jump
        return await run_single_jump(settings)

    from interfaces.cli import run_cli
    await run_cli(settings, log)
    return 0


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)
