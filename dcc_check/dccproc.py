import logging
import os
import signal
import subprocess
import tempfile
from typing import Optional

from .deadline import CancelScope
from .errors import BackendLaunchError, NoHeaderError
from .models import CheckRequest

logger = logging.getLogger(__name__)

# dccproc flag: write only the X-DCC header to stdout
HEADER_ONLY_FLAG = "-H"


def _kill(proc: subprocess.Popen):
    # once reaped, the pid (and its group id) may belong to someone else
    if proc.returncode is not None or proc.poll() is not None:
        return
    # dccproc runs in its own session; take down anything it spawned too
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


def _write_tmpfile(raw_message: bytes) -> str:
    fd, path = tempfile.mkstemp(prefix="dcc-", suffix=".msg")
    with os.fdopen(fd, "wb") as f:
        f.write(raw_message)
    return path


def query(
    request: CheckRequest,
    executable: str,
    options: str = "",
    scope: Optional[CancelScope] = None,
) -> list[str]:
    """
    Run dccproc on one message and return its stdout lines.
    The message goes through a temp file: piping both ways to a live child is
    unreliable when many workers share the host process.
    """
    # options were restricted to [A-Z -] when the config was loaded
    argv = [executable, HEADER_ONLY_FLAG, *options.split()]
    tmp_path = _write_tmpfile(request.raw_message)
    proc = None
    try:
        logger.debug("dcc: opening pipe: %s < %s", " ".join(argv), tmp_path)
        with open(tmp_path, "rb") as stdin:
            try:
                proc = subprocess.Popen(
                    argv,
                    stdin=stdin,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.DEVNULL,
                    start_new_session=True,
                )
            except OSError as e:
                raise BackendLaunchError(f"cannot run {executable}: {e}") from e

        if scope is not None:
            scope.register(lambda: _kill(proc))

        lines = [line.decode("utf-8", errors="replace") for line in proc.stdout]
        proc.wait()
    finally:
        if proc is not None:
            proc.stdout.close()
            if proc.poll() is None:
                _kill(proc)
                proc.wait()
        os.unlink(tmp_path)

    if not lines:
        raise NoHeaderError(f"no response from {executable} (exit status {proc.returncode})")
    logger.debug("dcc: got response: %s", "".join(lines).rstrip())
    return lines
