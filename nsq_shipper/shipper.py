"""Single-threaded stdin to NSQ log shipper."""

import logging
import sys
from typing import BinaryIO, Iterable

from nsq_shipper.config import Config
from nsq_shipper.formatter import EnvelopeFormatter
from nsq_shipper.nsq_client import NSQProducer

logger = logging.getLogger(__name__)


class LogShipper:
    """Formats each line, echoes it to stdout, and publishes it to NSQ."""

    def __init__(
        self,
        config: Config,
        formatter: EnvelopeFormatter,
        producer: NSQProducer,
        out: BinaryIO | None = None,
    ):
        self._config = config
        self._formatter = formatter
        self._producer = producer
        self._out = out if out is not None else sys.stdout.buffer
        self._published = 0
        self._failed = 0
        self._dropped = 0

    @property
    def published(self) -> int:
        return self._published

    @property
    def failed(self) -> int:
        return self._failed

    @property
    def dropped(self) -> int:
        return self._dropped

    def run(self, lines: Iterable[str]):
        """Ship every line in order; returns when the input is exhausted."""
        try:
            for line in lines:
                self.ship_line(line)
        finally:
            logger.info("Shipper finished: published=%d, failed=%d, dropped=%d",
                        self._published, self._failed, self._dropped)

    def ship_line(self, line: str):
        payload = self._formatter.format(line)
        if not payload:
            self._dropped += 1
            return

        self._echo(payload)
        if self._producer.publish_with_retry(
            self._config.topic, payload, max_retries=self._config.max_retries,
        ):
            self._published += 1
        else:
            self._failed += 1
            logger.warning("Failed to publish line to %s", self._config.topic)

    def _echo(self, payload: bytes):
        self._out.write(payload + b"\n")
        self._out.flush()
