"""Normalize raw log lines into JSON log envelopes."""

import json
import logging
from datetime import datetime, timezone

from nsq_shipper.identity import ProcessIdentity

logger = logging.getLogger(__name__)

SEVERITY_RAW = "raw"


def utc_timestamp(now: datetime | None = None) -> str:
    """Fixed-width ISO-8601 timestamp with microseconds and a literal Z."""
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _reject_constant(name: str):
    raise ValueError(f"invalid JSON constant: {name}")


def is_structured(line: str) -> bool:
    """True if the line is valid JSON that does not decode to null.

    No schema check: numbers, strings and unrelated objects all count.
    """
    try:
        value = json.loads(line, parse_constant=_reject_constant)
    except (ValueError, RecursionError):
        return False
    return value is not None


def build_envelope(
    message: str,
    identity: ProcessIdentity,
    service: str = "",
    application: str = "",
    timestamp: str | None = None,
) -> dict:
    """Build the meta/data envelope that wraps a raw line.

    Key order matches what consumers already read off the topic. The
    optional environment, caller_line and caller_file keys are left out
    because nothing populates them.
    """
    return {
        "meta": {
            "process_ctx_id": identity.ctx_id,
            "ctx_id": identity.ctx_id,
        },
        "data": {
            "parent_ctx_id": identity.ctx_id,
            "service": service,
            "hostname": identity.hostname,
            "timestamp": timestamp or utc_timestamp(),
            "severity": SEVERITY_RAW,
            "application": application,
            "msg": message,
        },
    }


def to_valid_text(line: str) -> str:
    """Replace surrogate-escaped input bytes with U+FFFD."""
    return line.encode("utf-8", errors="surrogateescape").decode("utf-8", errors="replace")


def serialize(envelope: dict) -> bytes:
    """Compact UTF-8 JSON, non-ASCII characters kept as is."""
    return json.dumps(envelope, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


class EnvelopeFormatter:
    """Turns one non-blank line into the bytes to publish."""

    def __init__(self, identity: ProcessIdentity, service: str = "", application: str = ""):
        self._identity = identity
        self._service = service
        self._application = application

    def format(self, line: str) -> bytes:
        """Return the original bytes for JSON lines, an envelope otherwise.

        Undecodable input bytes become U+FFFD inside the envelope. Returns
        b"" if the envelope cannot be serialized.
        """
        if is_structured(line):
            return line.encode("utf-8", errors="surrogateescape")

        try:
            envelope = build_envelope(
                to_valid_text(line),
                self._identity,
                service=self._service,
                application=self._application,
            )
            return serialize(envelope)
        except (TypeError, ValueError) as e:
            logger.error("Problem marshal'ing string: %s", e)
            return b""
