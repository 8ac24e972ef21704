import re
from typing import Sequence

from .errors import MalformedResponseError
from .models import MANY, ParsedVerdict

HEADER_PREFIX = "X-DCC"
HEADER_RE = re.compile(r"^X-DCC-(?:(.*)-)?Metrics: (.*)$")

MANY_RE = re.compile(r"many", re.IGNORECASE)
OK_RE = re.compile(r"ok\d?", re.IGNORECASE)

BODY_RE = re.compile(r"Body=(\d+)")
FUZ1_RE = re.compile(r"Fuz1=(\d+)")
FUZ2_RE = re.compile(r"Fuz2=(\d+)")


def _chomp(line: str) -> str:
    return line.rstrip("\r\n")


def unfold_header(lines: Sequence[str]) -> tuple[str, list[str]]:
    """
    Join the first line with its folded continuation lines.
    Returns the unfolded header and whatever lines follow it, untouched.
    """
    if not lines:
        return "", []

    header = _chomp(lines[0])
    rest = list(lines[1:])
    while rest:
        line = rest[0]
        # Newer dccifd/dccproc fold long headers
        if not line[:1].isspace():
            break
        header += " " + _chomp(line).lstrip()
        rest.pop(0)
    return header, rest


def _count(pattern: re.Pattern, text: str) -> int:
    match = pattern.search(text)
    if not match:
        return 0
    return int(match.group(1))


def parse(lines: Sequence[str]) -> ParsedVerdict:
    """
    Parse a DCC response such as
    ``X-DCC-home-Metrics: host 1234; Body=many Fuz1=ok Fuz2=3``.

    Raises MalformedResponseError when there is no X-DCC header to read.
    """
    header, _ = unfold_header(lines)
    if not header.startswith(HEADER_PREFIX):
        raise MalformedResponseError(f"no X-DCC header returned: {header[:80]!r}")

    label = ""
    metrics = ""
    match = HEADER_RE.match(header)
    if match:
        label = match.group(1) or ""
        metrics = match.group(2)

    counted = MANY_RE.sub(str(MANY), header)
    counted = OK_RE.sub("0", counted)

    return ParsedVerdict(
        backend_label=label,
        raw_metrics=metrics,
        body=_count(BODY_RE, counted),
        fuz1=_count(FUZ1_RE, counted),
        fuz2=_count(FUZ2_RE, counted),
    )
