import argparse
import os
from functools import lru_cache
from pathlib import Path


@lru_cache
def get_cli_args(argv: tuple[str, ...] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="kiln",
        description=(
            "Start a kiln HTTP service.\n\n"
            "Settings come from the process environment, optionally completed by a\n"
            "dotenv file. SIGTERM, SIGINT and SIGUSR2 trigger a graceful shutdown."
        ),
        formatter_class=argparse.RawTextHelpFormatter
    )

    parser.add_argument(
        "-e", "--env-file",
        type=str,
        help="Path to a dotenv file completing the process environment"
    )

    parser.add_argument(
        "-l", "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help=(
            "Logging verbosity.\n"
            "Choose among: DEBUG, INFO, WARNING, ERROR, CRITICAL.\n"
            "Defaults to the LOG_LEVEL variable, then INFO.\n\n"
            "Example:\n"
            "  --log-level DEBUG"
        ),
    )

    return parser.parse_args(argv)


def get_env_file(args: argparse.Namespace) -> Path | None:
    # Priority: CLI > ENV > .env in current working directory (optional)
    raw = args.env_file or os.getenv("KILN_ENV_FILE")

    if raw is None:
        file = Path.cwd() / ".env"
        return file if file.is_file() else None

    file = Path(raw)
    if not file.is_file():
        raise SystemExit(
            f"[config] Environment file not found: '{file}'.\n"
            "  - Use --env-file <file>\n"
            "  - Or set the KILN_ENV_FILE environment variable\n"
            "  - Or place a '.env' file in the current working directory."
        )

    return file
