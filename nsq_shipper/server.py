"""Minimal nsqd stand-in for local runs and tests.

Speaks just enough of protocol V2 for a producer: the magic, PUB and NOP.
"""

import logging
import re
import socket
import struct
import threading

from nsq_shipper.nsq_client import (
    FRAME_TYPE_ERROR,
    FRAME_TYPE_RESPONSE,
    HEARTBEAT,
    MAGIC_V2,
    OK,
    encode_frame,
)

logger = logging.getLogger(__name__)

_TOPIC_RE = re.compile(r"[.a-zA-Z0-9_-]{1,64}(#ephemeral)?")


def is_valid_topic(topic: str) -> bool:
    return len(topic) <= 64 and _TOPIC_RE.fullmatch(topic) is not None


class SimpleNSQServer:
    """TCP server that accepts PUB commands and replies OK.

    Stores (topic, body) pairs in self.received for test assertions. With
    heartbeat=True a heartbeat frame is sent ahead of every OK.
    """

    def __init__(self, host: str, port: int, shutdown_event: threading.Event,
                 heartbeat: bool = False):
        self._host = host
        self._port = port
        self._shutdown = shutdown_event
        self._heartbeat = heartbeat
        self._sock: socket.socket | None = None
        self._server_address: tuple | None = None
        self.received: list[tuple[str, bytes]] = []
        self.nops = 0
        self._lock = threading.Lock()

    @property
    def server_address(self) -> tuple:
        return self._server_address

    def start(self):
        """Bind, listen, and accept connections until shutdown."""
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.settimeout(1.0)
        self._sock.bind((self._host, self._port))
        self._sock.listen(5)
        self._server_address = self._sock.getsockname()
        logger.info("nsqd stand-in listening on %s:%d", *self._server_address)

        while not self._shutdown.is_set():
            try:
                conn, addr = self._sock.accept()
            except socket.timeout:
                continue
            except OSError:
                break

            t = threading.Thread(
                target=self._handle_client,
                args=(conn, addr),
                daemon=True,
            )
            t.start()

    def stop(self):
        """Signal shutdown and close the listen socket."""
        self._shutdown.set()
        if self._sock:
            try:
                self._sock.close()
            except OSError:
                pass

    def _handle_client(self, conn: socket.socket, addr: tuple):
        logger.info("Producer connected from %s:%d", *addr)
        buf = b""
        conn.settimeout(1.0)
        magic_seen = False

        try:
            while not self._shutdown.is_set():
                try:
                    data = conn.recv(4096)
                except socket.timeout:
                    continue
                except OSError:
                    break
                if not data:
                    break

                buf += data
                if not magic_seen:
                    if len(buf) < 4:
                        continue
                    if buf[:4] != MAGIC_V2:
                        self._send(conn, FRAME_TYPE_ERROR, b"E_BAD_PROTOCOL bad protocol magic")
                        break
                    buf = buf[4:]
                    magic_seen = True

                buf = self._process_buffer(conn, buf)
                if buf is None:
                    break
        finally:
            conn.close()
            logger.info("Producer disconnected: %s:%d", *addr)

    def _process_buffer(self, conn: socket.socket, buf: bytes) -> bytes | None:
        """Handle every complete command in buf; None means drop the client."""
        while b"\n" in buf:
            line, rest = buf.split(b"\n", 1)
            params = line.split(b" ")
            command = params[0]

            if command == b"NOP":
                with self._lock:
                    self.nops += 1
                buf = rest
                continue

            if command != b"PUB" or len(params) != 2:
                self._send(conn, FRAME_TYPE_ERROR, b"E_INVALID invalid command " + command)
                return None

            if len(rest) < 4:
                break
            size = struct.unpack(">I", rest[:4])[0]
            if len(rest) < 4 + size:
                break
            body = rest[4:4 + size]
            buf = rest[4 + size:]

            topic = params[1].decode("utf-8", errors="replace")
            if not is_valid_topic(topic):
                self._send(conn, FRAME_TYPE_ERROR,
                           b"E_BAD_TOPIC PUB topic name " + params[1] + b" is not valid")
                return None
            if size == 0:
                self._send(conn, FRAME_TYPE_ERROR, b"E_BAD_MESSAGE PUB invalid message body size 0")
                return None

            with self._lock:
                self.received.append((topic, body))
            logger.info("[%s] %d bytes", topic, size)

            if self._heartbeat:
                self._send(conn, FRAME_TYPE_RESPONSE, HEARTBEAT)
            self._send(conn, FRAME_TYPE_RESPONSE, OK)
        return buf

    def _send(self, conn: socket.socket, frame_type: int, data: bytes):
        try:
            conn.sendall(encode_frame(frame_type, data))
        except OSError:
            pass
