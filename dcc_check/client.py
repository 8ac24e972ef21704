import logging
import threading
from functools import partial
from typing import Callable, Optional

from . import dccifd, dccproc
from .config import DccConfig, find_dccifd, find_dccproc
from .deadline import CancelScope, run_with_deadline
from .errors import MalformedResponseError, TransportError
from .message import build_request, find_upstream_marker
from .models import CheckOutcome, CheckRequest, Reason, Thresholds, TransportKind
from .parser import parse

logger = logging.getLogger(__name__)


class CheckClient:
    """
    Checks messages against DCC through dccifd or dccproc.

    The transport is detected on first use and cached until reconfigure().
    Every failure is reported as an indeterminate outcome, never raised.
    """

    def __init__(self, config: Optional[DccConfig] = None):
        self.config = config or DccConfig()
        self._lock = threading.Lock()
        self._kind: Optional[TransportKind] = None
        self._target: Optional[str] = None

    def reconfigure(self, config: DccConfig):
        with self._lock:
            self.config = config
            self._kind = None
            self._target = None

    def resolve_transport(self, force: bool = False) -> TransportKind:
        return self._resolve(force)[0]

    def _resolve(self, force: bool = False) -> tuple[TransportKind, Optional[str]]:
        with self._lock:
            if self._kind is None or force:
                self._kind, self._target = self._detect()
            return self._kind, self._target

    def _detect(self) -> tuple[TransportKind, Optional[str]]:
        if not self.config.enabled:
            if not self.config.use_dcc:
                logger.debug("dcc: use_dcc option not enabled, disabling DCC")
            else:
                logger.debug("dcc: local tests only, disabling DCC")
            return TransportKind.DISABLED, None

        path = find_dccifd(self.config)
        if path:
            return TransportKind.SOCKET, path
        path = find_dccproc(self.config)
        if path:
            return TransportKind.PROCESS, path

        logger.debug("dcc: no dccifd or dccproc found, disabling DCC")
        return TransportKind.UNAVAILABLE, None

    def _transport(self, kind: TransportKind, target: str) -> Callable:
        if kind is TransportKind.SOCKET:
            return partial(dccifd.query, socket_path=target)
        return partial(dccproc.query, executable=target, options=self.config.options)

    def check(self, request: CheckRequest, thresholds: Optional[Thresholds] = None) -> CheckOutcome:
        if not request.raw_message:
            logger.debug("dcc: empty message, skipping dcc check")
            return CheckOutcome.indeterminate(Reason.EMPTY_INPUT)

        marker = find_upstream_marker(request.raw_message)
        if marker:
            logger.debug("dcc: message already tagged bulk upstream: %s", marker)
            return CheckOutcome.hit(parse([marker]), Reason.ALREADY_TAGGED_UPSTREAM)

        kind, target = self._resolve()
        if kind in (TransportKind.DISABLED, TransportKind.UNAVAILABLE):
            return CheckOutcome.indeterminate(Reason.TRANSPORT_UNAVAILABLE)

        config = self.config
        query = self._transport(kind, target)
        scope = CancelScope()
        result = run_with_deadline(config.timeout, lambda: query(request, scope=scope), scope)

        if result.status == "timed_out":
            logger.debug("dcc: %s check timed out after %s secs.", kind.value, config.timeout)
            return CheckOutcome.indeterminate(Reason.TIMEOUT)
        if result.status == "failed":
            if isinstance(result.error, TransportError):
                logger.debug("dcc: %s check failed: %s", kind.value, result.error)
            else:
                logger.warning("dcc: %s -> check skipped: %r", kind.value, result.error)
            return CheckOutcome.indeterminate(Reason.TRANSPORT_UNAVAILABLE)

        try:
            verdict = parse(result.value)
        except MalformedResponseError as e:
            logger.debug("dcc: check failed - %s", e)
            return CheckOutcome.indeterminate(Reason.MALFORMED_RESPONSE)

        thresholds = thresholds or config.thresholds
        if thresholds.exceeded_by(verdict):
            logger.debug(
                "dcc: listed: BODY=%s/%s FUZ1=%s/%s FUZ2=%s/%s",
                verdict.body, thresholds.body_max,
                verdict.fuz1, thresholds.fuz1_max,
                verdict.fuz2, thresholds.fuz2_max,
            )
            return CheckOutcome.hit(verdict)
        return CheckOutcome.miss(verdict)

    def check_message(self, raw_email: bytes, **envelope) -> CheckOutcome:
        return self.check(build_request(raw_email, **envelope))
