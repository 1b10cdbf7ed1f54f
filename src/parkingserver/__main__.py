"""
=============================================================================
PARKING SERVER CLI ENTRY POINT
=============================================================================

    # Run with defaults (0.0.0.0:8080, 100 spaces, parking_data.dat)
    python -m parkingserver

    # Smaller lot, custom rates, different snapshot file
    python -m parkingserver --capacity 20 --small-rate 4 --large-rate 10 \\
                            --data-file /var/lib/parking/lot.dat

    # Serve the browser frontend too
    python -m parkingserver --static ./frontend

Settings are read from PARKING_* environment variables first (see
ServerConfig.from_env); command-line flags override them.

Exit status: 0 after a clean stop (Ctrl+C / SIGTERM), 1 if the server
could not start (invalid setting, port in use, unreadable static dir).

=============================================================================
"""

import argparse
import sys
from typing import List, Optional

from . import __version__
from .config import ServerConfig
from .server import ParkingServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="parkingserver",
        description="Parking lot management HTTP server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m parkingserver                         # Run with defaults
  python -m parkingserver --port 3000             # Custom port
  python -m parkingserver --capacity 20           # 20 spaces
  python -m parkingserver --data-file lot.dat     # Snapshot location
  python -m parkingserver --static ./frontend     # Serve the web UI
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--host", "-H", help="Host to bind to (default: 0.0.0.0)")
    parser.add_argument("--port", "-p", type=int, help="Port to listen on (default: 8080)")

    # ─────────────────────────────────────────────────────────────────────
    # PARKING LOT
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--capacity", "-c", type=int, help="Number of spaces, 1-1000 (default: 100)")
    parser.add_argument("--small-rate", type=float, help="Hourly rate for small vehicles (default: 5.0)")
    parser.add_argument("--large-rate", type=float, help="Hourly rate for large vehicles (default: 8.0)")
    parser.add_argument(
        "--data-file", "-d",
        help="Snapshot file (default: parking_data.dat). Pass '' to keep state in memory only.",
    )

    # ─────────────────────────────────────────────────────────────────────
    # CONCURRENCY
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--workers", "-w", type=int, help="Worker threads (default: CPU count)")
    parser.add_argument(
        "--max-connections", type=int,
        help="Connections handled or queued at once; extra ones get 503 (default: 64)",
    )
    parser.add_argument("--read-timeout", type=float, help="Seconds a single read may block (default: 5)")

    # ─────────────────────────────────────────────────────────────────────
    # FRONTEND / LOGGING
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--static", "-s", help="Directory holding the browser frontend")
    parser.add_argument("--no-cors", action="store_true", help="Do not send CORS headers")
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    parser.add_argument("--version", "-v", action="version", version=f"parkingserver {__version__}")
    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Environment defaults, overridden by whatever flags were given."""
    config = ServerConfig.from_env()

    overrides = {
        "host": args.host,
        "port": args.port,
        "capacity": args.capacity,
        "small_rate": args.small_rate,
        "large_rate": args.large_rate,
        "workers": args.workers,
        "max_connections": args.max_connections,
        "read_timeout": args.read_timeout,
        "static_dir": args.static,
        "log_level": args.log_level,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)

    if args.data_file is not None:
        config.data_file = args.data_file or None
    if args.no_cors:
        config.cors = False

    return config


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
        server = ParkingServer(config)
        server.run()
    except (ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
