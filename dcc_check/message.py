import re
from email import message_from_bytes
from typing import Iterable, Optional

from .models import CheckRequest

# Someone upstream already ran DCC and called the message bulk
UPSTREAM_BULK_RE = re.compile(r"^X-DCC-(?:[^:]{1,80}-)?Metrics:.*bulk", re.MULTILINE)


def _unfold(value: str) -> str:
    return re.sub(r"\r?\n[ \t]+", " ", value)


def find_upstream_marker(raw_email: bytes) -> Optional[str]:
    """Return the unfolded X-DCC header line marking the message as bulk, if any."""
    msg = message_from_bytes(raw_email)
    for name, value in msg.items():
        line = f"{name}: {_unfold(str(value))}"
        if UPSTREAM_BULK_RE.search(line):
            return line
    return None


def build_request(
    raw_email: bytes,
    client_ip: str = "0.0.0.0",
    helo: str = "",
    sender: str = "",
    recipients: Iterable[str] = (),
) -> CheckRequest:
    return CheckRequest(
        raw_message=raw_email,
        client_ip=client_ip or "0.0.0.0",
        helo=helo or "",
        sender=sender or "",
        recipients=tuple(r for r in recipients if r),
    )
