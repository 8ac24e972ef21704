from dataclasses import dataclass
from enum import Enum
from typing import Optional

# DCC's own spelling of "many" reports
MANY = 999999


class TransportKind(Enum):
    SOCKET = "dccifd"
    PROCESS = "dccproc"
    DISABLED = "disabled"
    UNAVAILABLE = "none"


class Reason(Enum):
    TIMEOUT = "timeout"
    TRANSPORT_UNAVAILABLE = "transport_unavailable"
    MALFORMED_RESPONSE = "malformed_response"
    EMPTY_INPUT = "empty_input"
    ALREADY_TAGGED_UPSTREAM = "already_tagged_upstream"


@dataclass(frozen=True)
class CheckRequest:
    raw_message: bytes
    client_ip: str = "0.0.0.0"
    helo: str = ""
    sender: str = ""
    recipients: tuple[str, ...] = ()


@dataclass(frozen=True)
class ParsedVerdict:
    backend_label: str
    raw_metrics: str
    body: int = 0
    fuz1: int = 0
    fuz2: int = 0


@dataclass(frozen=True)
class Thresholds:
    body_max: int = MANY
    fuz1_max: int = MANY
    fuz2_max: int = MANY

    def exceeded_by(self, verdict: ParsedVerdict) -> bool:
        return (
            verdict.body >= self.body_max
            or verdict.fuz1 >= self.fuz1_max
            or verdict.fuz2 >= self.fuz2_max
        )


@dataclass(frozen=True)
class CheckOutcome:
    """Result of one DCC check.

    ``status`` is one of "hit", "miss" or "indeterminate". Hit and miss carry
    the parsed verdict; indeterminate carries only the reason no verdict was
    reached. A hit taken from an upstream X-DCC header is marked with
    ``Reason.ALREADY_TAGGED_UPSTREAM``.
    """

    status: str
    verdict: Optional[ParsedVerdict] = None
    reason: Optional[Reason] = None

    @classmethod
    def hit(cls, verdict: ParsedVerdict, reason: Optional[Reason] = None) -> "CheckOutcome":
        return cls("hit", verdict, reason)

    @classmethod
    def miss(cls, verdict: ParsedVerdict) -> "CheckOutcome":
        return cls("miss", verdict)

    @classmethod
    def indeterminate(cls, reason: Reason) -> "CheckOutcome":
        return cls("indeterminate", None, reason)

    @property
    def is_hit(self) -> bool:
        return self.status == "hit"

    @property
    def tags(self) -> dict:
        """Report tags: DCCB is the backend label, DCCR the raw metrics."""
        if self.verdict is None:
            return {}
        return {"DCCB": self.verdict.backend_label, "DCCR": self.verdict.raw_metrics}

    def report_header(self) -> Optional[str]:
        if self.verdict is None:
            return None
        label = self.verdict.backend_label
        name = f"X-DCC-{label}-Metrics" if label else "X-DCC-Metrics"
        return f"{name}: {self.verdict.raw_metrics}"
