"""Shared fixtures: a fake dccifd listening on a unix socket and fake dccproc scripts."""

from __future__ import annotations

import os
import shutil
import socket
import tempfile
import threading
import time

import pytest

HEADER = b"X-DCC-home-Metrics: Body=1000000 Fuz1=2 Fuz2=1\n"


class FakeDccifd:
    """Accepts connections, reads the request until the client half-closes, then replies."""

    def __init__(self, path: str, response: bytes, delay: float = 0.0) -> None:
        self.path = path
        self.response = response
        self.delay = delay
        self.received: list[bytes] = []
        self.sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        self.sock.bind(path)
        self.sock.listen(5)
        self.thread = threading.Thread(target=self._serve, daemon=True)
        self.thread.start()

    def _serve(self) -> None:
        while True:
            try:
                conn, _ = self.sock.accept()
            except OSError:
                return
            with conn:
                data = b""
                while True:
                    chunk = conn.recv(65536)
                    if not chunk:
                        break
                    data += chunk
                self.received.append(data)
                if self.delay:
                    time.sleep(self.delay)
                try:
                    conn.sendall(self.response)
                except OSError:
                    pass

    def close(self) -> None:
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.sock.close()


@pytest.fixture
def short_tmp():
    """A short directory path; unix socket paths are limited to ~108 bytes."""
    path = tempfile.mkdtemp(prefix="dcc", dir="/tmp")
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def dccifd_server(short_tmp):
    servers: list[FakeDccifd] = []

    def start(response: bytes = b"A\nA\n" + HEADER, delay: float = 0.0) -> FakeDccifd:
        server = FakeDccifd(os.path.join(short_tmp, "dccifd"), response, delay)
        servers.append(server)
        return server

    yield start
    for server in servers:
        server.close()


@pytest.fixture
def make_dccproc(tmp_path):
    """Write an executable shell script standing in for dccproc."""

    def make(body: str, name: str = "dccproc") -> str:
        path = tmp_path / name
        path.write_text("#!/bin/sh\n" + body)
        path.chmod(0o755)
        return str(path)

    return make
