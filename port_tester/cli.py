#!/usr/bin/env python3
"""
Check that a port is open and round-trippable between hosts.

Starts a local echo listener on PORT (unless --no-listen), waits --delay
seconds, probes every HOST on PORT, keeps the listener up for --sleep more
seconds and exits. Run it on every host of a fleet with the same arguments.

Usage:
    port-tester --port 9000 10.0.0.1 10.0.0.2
    port-tester --port 9000 --proto udp --delay 5 --sleep 10 10.0.0.1
    port-tester --port 9000 --no-listen --timeout 2 192.168.1.10

Output, one line per host:
    10.0.0.1:9000: OK 24
    10.0.0.2:9000: Error dial tcp 10.0.0.2:9000: Connection refused
"""
import argparse
import logging
import sys

from . import __version__
from .config import DEFAULT_DELAY, DEFAULT_SLEEP, DEFAULT_TIMEOUT, Config
from .errors import PortTesterError
from .runner import PortTester

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def build_argparser():
    ap = argparse.ArgumentParser(
        prog="port-tester",
        description="Listen on a port and check it on a list of hosts (TCP or UDP)",
    )
    ap.add_argument("targets", nargs="*", metavar="HOST", help="Hosts/IPs to check")
    ap.add_argument("--port", type=int, default=0, help="Port to listen and check")
    ap.add_argument("--proto", default="tcp", help="Protocol (tcp/udp)")
    ap.add_argument("--bind", default="", help="Bind to specific IP, empty by default")
    ap.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT, help="Timeout for reply (seconds)")
    ap.add_argument("--delay", type=float, default=DEFAULT_DELAY,
                    help="Time to sleep before starting checks (seconds)")
    ap.add_argument("--sleep", type=float, default=DEFAULT_SLEEP, help="Time to sleep after checks (seconds)")
    ap.add_argument("--no-listen", action="store_true",
                    help="Do not start local servers, only check remote")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    ap.add_argument("-q", "--quiet", action="store_true", help="Only log errors")
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return ap


def setup_logging(verbose=False, quiet=False):
    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)


def config_from_args(args):
    return Config(
        port=args.port,
        targets=args.targets,
        protocol=args.proto,
        bind_address=args.bind,
        timeout=args.timeout,
        delay=args.delay,
        sleep=args.sleep,
        no_listen=args.no_listen,
    ).validate()


def main(argv=None):
    args = build_argparser().parse_args(argv)
    setup_logging(args.verbose, args.quiet)
    logger = logging.getLogger("port_tester")

    try:
        config = config_from_args(args)
        PortTester(config).run()
    except PortTesterError as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        logger.error("interrupted")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
