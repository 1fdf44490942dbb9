#!/usr/bin/env python3
"""
Command-line interface for the ban lifecycle core.

Usage:
    python cli.py [command] [options]

Commands:
    demo        Run demo scenarios
    sweep       Run the expiry sweep against the configured data
    banned      List currently banned customers
    run         Run the background sweep until interrupted
    test        Run the test suite

Examples:
    python cli.py demo temporary-ban
    python cli.py demo all
    python cli.py sweep
    python cli.py banned
    python cli.py run
"""

import argparse
import subprocess
import time
import sys

from shared.config import configure_logging


def run_demo(scenario: str) -> None:
    """Run a demo scenario."""
    from lifecycle.demo import DEMOS

    if scenario == "all":
        for demo in DEMOS.values():
            demo()
    elif scenario in DEMOS:
        DEMOS[scenario]()
    else:
        print(f"Unknown scenario: {scenario}")
        sys.exit(1)


def run_sweep() -> None:
    """Expire every due ban once."""
    from lifecycle.service import build_ban_service

    service = build_ban_service()
    try:
        result = service.sweeper.run_once()
    finally:
        service.close()

    if result.skipped:
        print("Another sweep is running; nothing done.")
        return
    print(f"Expired {result.expired_count} ban(s)")
    for ban in result.expired:
        print(f"  {ban.customer_id}: {ban.reason} (ended {ban.ends_at:%d %b %Y})")
    for customer_id, error in result.errors.items():
        print(f"  ERROR {customer_id}: {error}")


def run_banned() -> None:
    """Print the banned customers list."""
    from lifecycle.service import build_ban_service

    service = build_ban_service()
    try:
        banned = service.coordinator.get_banned_customers()
    finally:
        service.close()

    if not banned:
        print("No banned customers.")
        return
    for row in banned:
        ends = f"until {row.ends_at:%d %b %Y}" if row.ends_at else "permanent"
        print(f"  {row.name:<24} {row.phone:<14} {ends:<18} {row.reason}")


def run_service() -> None:
    """Run the expiry sweep and notice retries in the background until Ctrl+C."""
    from lifecycle.service import build_ban_service

    service = build_ban_service()
    service.start()
    print(f"Sweeping every {service.settings.sweep_interval_seconds:g}s. Press Ctrl+C to stop.")
    try:
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        print("Stopping...")
    finally:
        service.close()


def run_tests(args: list[str]) -> None:
    """Run the test suite."""
    cmd = [sys.executable, "-m", "pytest"] + args
    subprocess.run(cmd)


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Customer ban lifecycle CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s demo temporary-ban
  %(prog)s demo all
  %(prog)s sweep
  %(prog)s banned
  %(prog)s run
  %(prog)s test -v
        """,
    )
    parser.add_argument("--log-level", default=None, help="Override BANS_LOG_LEVEL")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Demo command
    demo_parser = subparsers.add_parser("demo", help="Run demo scenarios")
    demo_parser.add_argument(
        "scenario",
        choices=["temporary-ban", "permanent-ban", "failed-notification", "all"],
        help="Which scenario to run",
    )

    subparsers.add_parser("sweep", help="Expire due bans once")
    subparsers.add_parser("banned", help="List banned customers")
    subparsers.add_parser("run", help="Sweep and retry notices until interrupted")

    # Test command
    test_parser = subparsers.add_parser("test", help="Run the test suite")
    test_parser.add_argument(
        "pytest_args",
        nargs="*",
        default=[],
        help="Arguments to pass to pytest",
    )

    args = parser.parse_args()

    if args.command != "test":
        configure_logging(args.log_level.upper() if args.log_level else None)

    if args.command == "demo":
        run_demo(args.scenario)
    elif args.command == "sweep":
        run_sweep()
    elif args.command == "banned":
        run_banned()
    elif args.command == "run":
        run_service()
    elif args.command == "test":
        run_tests(args.pytest_args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
