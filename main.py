"""Entry point for the stdin to NSQ log shipper."""

import logging
import sys

from nsq_shipper.config import ConfigError, load_config, parse_endpoint, validate_config
from nsq_shipper.formatter import EnvelopeFormatter
from nsq_shipper.identity import ProcessIdentity
from nsq_shipper.nsq_client import NSQProducer
from nsq_shipper.reader import read_lines
from nsq_shipper.shipper import LogShipper


def main(argv=None, stdin=None, stdout=None) -> int:
    # Startup failures exit 0.
    try:
        config = load_config(argv)
    except ConfigError as e:
        print(e, file=sys.stderr)
        return 0

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        stream=sys.stderr,
    )
    logger = logging.getLogger(__name__)

    try:
        config = validate_config(config)
    except ConfigError as e:
        print(e, file=sys.stderr)
        return 0

    logger.info("Producing logs to '%s' on '%s'", config.topic, config.endpoint)

    identity = ProcessIdentity.current()
    host, port = parse_endpoint(config.endpoint)
    producer = NSQProducer(host, port, timeout=config.timeout)
    shipper = LogShipper(
        config,
        EnvelopeFormatter(identity, service=config.svc, application=config.app),
        producer,
        out=stdout,
    )

    try:
        shipper.run(read_lines(stdin if stdin is not None else sys.stdin.buffer))
    except (KeyboardInterrupt, BrokenPipeError):
        pass
    finally:
        producer.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
