import logging
import socket
from typing import Optional

from .deadline import CancelScope
from .errors import NoHeaderError, TransportError
from .models import CheckRequest

logger = logging.getLogger(__name__)

# Only the folded header block is parsed; ignore anything past this
MAX_RESPONSE_LINES = 64
MAX_LINE_BYTES = 8192


class DccifdSession:
    def __init__(self, socket_path: str, scope: Optional[CancelScope] = None):
        self.socket_path = socket_path
        self.scope = scope
        self.sock = None
        self.reader = None

    def __enter__(self):
        self.sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        if self.scope is not None:
            self.scope.register(self.abort)
        try:
            self.sock.connect(self.socket_path)
        except OSError as e:
            self.close()
            raise TransportError(f"failed to open socket {self.socket_path}: {e}") from e
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        if self.reader is not None:
            self.reader.close()
        if self.sock is not None:
            self.sock.close()

    def abort(self):
        """Unblock a pending read or write from another thread."""
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        # the reader is left to the owning thread; shutdown already woke it
        self.sock.close()

    def _write(self, data: bytes):
        try:
            self.sock.sendall(data)
        except OSError as e:
            raise TransportError(f"failed write: {e}") from e

    def send_request(self, request: CheckRequest):
        # options; "header" asks dccifd for the X-DCC header only
        self._write(b"header\n")
        self._write(f"{request.client_ip or '0.0.0.0'}\n".encode())
        self._write(f"{request.helo}\n".encode())
        self._write(f"{request.sender}\n".encode())
        for rcpt in request.recipients or ("unknown",):
            self._write(f"{rcpt}\r\n".encode())
        self._write(b"\n")
        self._write(request.raw_message)
        try:
            self.sock.shutdown(socket.SHUT_WR)
        except OSError as e:
            raise TransportError(f"failed socket shutdown: {e}") from e

    def read_response(self) -> list[str]:
        self.reader = self.sock.makefile("rb")
        try:
            if not self.reader.readline(MAX_LINE_BYTES):
                raise TransportError("failed read status")
            if not self.reader.readline(MAX_LINE_BYTES):
                raise TransportError("failed read multistatus")
            lines = []
            while len(lines) < MAX_RESPONSE_LINES:
                line = self.reader.readline(MAX_LINE_BYTES)
                if not line:
                    break
                lines.append(line)
        except OSError as e:
            raise TransportError(f"failed read: {e}") from e
        if not lines:
            raise NoHeaderError("failed read header")
        return [line.decode("utf-8", errors="replace") for line in lines]


def query(request: CheckRequest, socket_path: str, scope: Optional[CancelScope] = None) -> list[str]:
    """
    Ask dccifd about one message over its unix socket.
    Returns the response lines after the status and multistatus lines.
    """
    with DccifdSession(socket_path, scope) as session:
        session.send_request(request)
        lines = session.read_response()
    logger.debug("dcc: dccifd got response: %s", "".join(lines).rstrip())
    return lines
