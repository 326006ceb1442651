"""Run the nsqd stand-in locally, e.g. to watch what the shipper publishes."""

import argparse
import logging
import signal
import sys
import threading

from nsq_shipper.server import SimpleNSQServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nsqd-standin",
        description="Accept NSQ PUB commands and log what arrives.",
    )
    parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=4150, help="nsqd TCP port (default: 4150)")
    parser.add_argument("--heartbeat", action="store_true",
                        help="Send a heartbeat frame before every OK")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        stream=sys.stderr,
    )

    shutdown_event = threading.Event()
    signal.signal(signal.SIGINT, lambda signum, frame: shutdown_event.set())
    signal.signal(signal.SIGTERM, lambda signum, frame: shutdown_event.set())

    server = SimpleNSQServer(args.host, args.port, shutdown_event, heartbeat=args.heartbeat)
    try:
        server.start()
    finally:
        server.stop()
        logging.getLogger(__name__).info("Received %d messages, %d NOPs",
                                         len(server.received), server.nops)


if __name__ == "__main__":
    main()
