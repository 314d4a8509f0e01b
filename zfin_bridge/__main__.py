"""Entry point for ZFIN Bridge.

Usage:
    python -m zfin_bridge                       Poll forever using ./config.ini
    python -m zfin_bridge --once                Run a single pass and exit
    python -m zfin_bridge --config PATH         Use another config file
    python -m zfin_bridge --config=PATH --once

Exit codes: 0 success, 1 runtime failure, 2 configuration or argument error.
"""

import sys
from datetime import datetime
from pathlib import Path

from zfin_bridge.app import EXIT_OK, EXIT_USAGE, App
from zfin_bridge.config import DEFAULT_CONFIG_NAME, Config, ConfigError

USAGE = "Usage: python -m zfin_bridge [--config <path>] [--once]"


def parse_args(argv: list[str]) -> tuple[Path, bool]:
    """Return ``(config_path, run_once)`` or raise :class:`ConfigError`."""
    config_path = Path(DEFAULT_CONFIG_NAME)
    once = False

    args = iter(argv)
    for arg in args:
        if arg == "--once":
            once = True
        elif arg.startswith("--config="):
            value = arg[len("--config="):].strip()
            if not value:
                raise ConfigError("Empty value for --config")
            config_path = Path(value)
        elif arg == "--config":
            value = next(args, None)
            if value is None:
                raise ConfigError("Missing value for --config")
            config_path = Path(value)
        else:
            raise ConfigError(f"Unknown argument: {arg}")
    return config_path, once


def _bootstrap(msg: str) -> None:
    """Print a timestamped message before logging is configured."""
    stamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    print(f"{stamp} {msg}", file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    """Parse arguments, load the config and run the bridge."""
    argv = sys.argv[1:] if argv is None else argv
    if any(arg in ("-h", "--help") for arg in argv):
        print(USAGE)
        return EXIT_OK

    try:
        config_path, once = parse_args(argv)
        app = App(Config.load(config_path), run_once=once)
    except ConfigError as exc:
        _bootstrap(f"Config/arguments error: {exc}")
        print(USAGE, file=sys.stderr)
        return EXIT_USAGE

    return app.run()


def run() -> None:
    """Console-script wrapper that exits with :func:`main`'s status."""
    sys.exit(main())


if __name__ == "__main__":
    run()
