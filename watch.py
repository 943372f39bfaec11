#!/usr/bin/env python3
"""
CamWall Monitor - Entry Point
Keeps every camera stream of a CamWall server open and logs its status.
Send SIGHUP to reconnect all cameras.
"""
import argparse
import os
import signal
import sys
import time

import httpx
from dotenv import load_dotenv

load_dotenv()

from camwall import get_logger
from camwall.client.monitor import WallMonitor
from camwall.logs import configure_logging

log = get_logger('monitor')


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Watch every camera stream of a CamWall server")
    parser.add_argument('base_url', nargs='?',
                        default=os.environ.get('CAMWALL_URL', 'http://localhost:3000'))
    parser.add_argument('--timeout', type=float,
                        default=float(os.environ.get('STREAM_TIMEOUT', '10')),
                        help="seconds without data before a stream counts as stalled")
    parser.add_argument('--report-every', type=float, default=60.0,
                        help="seconds between status summaries")
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point"""
    args = parse_args(argv)
    configure_logging(os.environ.get('LOG_LEVEL', 'INFO'), os.environ.get('LOG_DIR'))

    monitor = WallMonitor(args.base_url, stream_timeout=args.timeout)
    try:
        monitor.start()
    except httpx.HTTPError as e:
        log.error(f"Could not load cameras from {args.base_url}: {e}")
        sys.exit(1)

    def stop(signum, frame):
        log.info("Stopping monitor...")
        monitor.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, stop)
    signal.signal(signal.SIGTERM, stop)
    if hasattr(signal, 'SIGHUP'):
        signal.signal(signal.SIGHUP, lambda s, f: monitor.reconnect_all())

    while True:
        time.sleep(args.report_every)
        states = ', '.join(f"{k}={v}" for k, v in monitor.summary().items())
        log.info(f"Status: {states}")


if __name__ == '__main__':
    main()
