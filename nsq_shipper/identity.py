"""Process identity stamped into every envelope."""

import logging
import socket
import uuid
from dataclasses import dataclass

logger = logging.getLogger(__name__)


def _hostname() -> str:
    try:
        return socket.gethostname()
    except OSError as e:
        logger.warning("Problem getting hostname: %s", e)
        return ""


@dataclass(frozen=True)
class ProcessIdentity:
    hostname: str
    ctx_id: str

    @classmethod
    def current(cls) -> "ProcessIdentity":
        """Resolve the hostname and generate a context id for this process."""
        return cls(hostname=_hostname(), ctx_id=str(uuid.uuid4()))
