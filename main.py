#!/usr/bin/env python3
"""
NBU Watcher - Main Entry Point

Watches product pages for availability, notifies the operator over
Telegram and optionally adds newly available products to the shop cart.

Usage:
    python main.py
    python main.py --once
"""

import argparse
import sys


def main(argv=None):
    parser = argparse.ArgumentParser(description="NBU product availability watcher")
    parser.add_argument("--once", action="store_true", help="Run a single check cycle and exit")
    parser.add_argument("--env-file", default=None, help="Path to a .env file (default: ./.env)")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL (DEBUG, INFO, ...)")

    args = parser.parse_args(argv)

    from services.monitoring_daemon import main as run_daemon
    return run_daemon(env_file=args.env_file, once=args.once, log_level=args.log_level)


if __name__ == "__main__":
    sys.exit(main())
