"""NSQ producer speaking the nsqd TCP protocol (V2) with reconnect logic."""

import logging
import random
import socket
import struct
import time

logger = logging.getLogger(__name__)

MAGIC_V2 = b"  V2"

FRAME_TYPE_RESPONSE = 0
FRAME_TYPE_ERROR = 1
FRAME_TYPE_MESSAGE = 2

HEARTBEAT = b"_heartbeat_"
OK = b"OK"


def encode_pub(topic: str, body: bytes) -> bytes:
    """Build a PUB command.

    Wire format: PUB <topic>\\n[4-byte BE uint32 size][body]
    """
    return b"PUB " + topic.encode("utf-8") + b"\n" + struct.pack(">I", len(body)) + body


def encode_frame(frame_type: int, data: bytes) -> bytes:
    """Build a response frame: [4-byte size][4-byte frame type][data].

    The size covers the frame type and the data.
    """
    return struct.pack(">II", len(data) + 4, frame_type) + data


def backoff_delay(attempt: int) -> float:
    """Exponential backoff (0.1s doubling, capped at 2s) with 0.8-1.2 jitter."""
    base = 0.1 * (2 ** attempt)
    capped = min(base, 2.0)
    return capped * random.uniform(0.8, 1.2)


class NSQProducer:
    """Manages a publish connection to one nsqd with lazy (re)connect."""

    def __init__(self, host: str, port: int, timeout: float = 5.0):
        self._host = host
        self._port = port
        self._timeout = timeout
        self._sock: socket.socket | None = None
        self._buffer = b""

    @property
    def connected(self) -> bool:
        return self._sock is not None

    def connect(self) -> bool:
        """Open the TCP connection and send the protocol magic."""
        try:
            sock = socket.create_connection((self._host, self._port), timeout=self._timeout)
        except OSError as e:
            logger.warning("Failed to connect to nsqd %s:%d: %s", self._host, self._port, e)
            return False
        try:
            sock.sendall(MAGIC_V2)
        except OSError as e:
            logger.warning("Failed to send protocol magic to %s:%d: %s", self._host, self._port, e)
            sock.close()
            return False
        self._sock = sock
        self._buffer = b""
        logger.info("Connected to nsqd %s:%d", self._host, self._port)
        return True

    def close(self):
        """Close the connection."""
        if self._sock:
            try:
                self._sock.close()
            except OSError:
                pass
            self._sock = None
            self._buffer = b""

    def publish(self, topic: str, body: bytes) -> bool:
        """Publish one message and wait for nsqd to acknowledge it.

        Connects first if needed. Returns True on OK; any socket failure or
        error frame is logged, the connection dropped and False returned.
        """
        if not self._sock and not self.connect():
            return False

        try:
            self._sock.sendall(encode_pub(topic, body))
            frame_type, data = self._read_response()
        except OSError as e:
            logger.warning("Publish to %s failed: %s", topic, e)
            self.close()
            return False

        if frame_type == FRAME_TYPE_ERROR:
            logger.warning("nsqd rejected publish to %s: %s",
                           topic, data.decode("utf-8", errors="replace"))
            self.close()
            return False

        if data != OK:
            logger.warning("Unexpected response to publish: %r", data[:200])
            self.close()
            return False

        return True

    def publish_with_retry(self, topic: str, body: bytes, max_retries: int = 0) -> bool:
        """Publish, retrying with reconnect and backoff up to max_retries times."""
        for attempt in range(max_retries + 1):
            if self.publish(topic, body):
                return True
            if attempt < max_retries:
                delay = backoff_delay(attempt)
                logger.info("Retrying publish in %.2fs (attempt %d/%d)...",
                            delay, attempt + 1, max_retries)
                time.sleep(delay)
        return False

    def _read_response(self) -> tuple[int, bytes]:
        """Read frames until one that is not a heartbeat arrives."""
        while True:
            size = struct.unpack(">I", self._recv_exact(4))[0]
            if size < 4:
                raise ConnectionError(f"invalid frame size {size}")
            frame = self._recv_exact(size)
            frame_type = struct.unpack(">I", frame[:4])[0]
            data = frame[4:]

            if frame_type == FRAME_TYPE_RESPONSE and data == HEARTBEAT:
                logger.debug("Heartbeat received, sending NOP")
                self._sock.sendall(b"NOP\n")
                continue
            return frame_type, data

    def _recv_exact(self, n: int) -> bytes:
        while len(self._buffer) < n:
            chunk = self._sock.recv(4096)
            if not chunk:
                raise ConnectionError("nsqd closed connection")
            self._buffer += chunk
        data, self._buffer = self._buffer[:n], self._buffer[n:]
        return data
