import logging
import os
import re
import shutil
import stat
from dataclasses import dataclass, field
from typing import Mapping, Optional

from .errors import ConfigError
from .models import MANY, Thresholds

logger = logging.getLogger(__name__)

# Only these characters may reach the dccproc command line
OPTIONS_RE = re.compile(r"[A-Z -]+")

DEFAULT_TIMEOUT = 10
DEFAULT_OPTIONS = "-R"


def validate_options(value: str) -> str:
    if not OPTIONS_RE.fullmatch(value):
        raise ConfigError(f"invalid dcc options {value!r}: only [A-Z -] is allowed")
    return value


def _positive_int(name: str, value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None
    if number <= 0:
        raise ConfigError(f"{name} must be positive, got {number}")
    return number


def _flag(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class DccConfig:
    use_dcc: bool = True
    local_tests_only: bool = False
    timeout: int = DEFAULT_TIMEOUT
    thresholds: Thresholds = field(default_factory=Thresholds)
    home: Optional[str] = None
    dccifd_path: Optional[str] = None
    dccproc_path: Optional[str] = None
    options: str = DEFAULT_OPTIONS

    def __post_init__(self):
        validate_options(self.options)
        if self.timeout <= 0:
            raise ConfigError(f"timeout must be positive, got {self.timeout}")
        for name in ("body_max", "fuz1_max", "fuz2_max"):
            value = getattr(self.thresholds, name)
            if value <= 0:
                raise ConfigError(f"{name} must be positive, got {value}")

    @property
    def enabled(self) -> bool:
        return self.use_dcc and not self.local_tests_only

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DccConfig":
        """
        Build a config from DCC_* environment variables.
        Call dotenv.load_dotenv() first to pick up a .env file.
        """
        env = os.environ if environ is None else environ
        thresholds = Thresholds(
            body_max=_positive_int("DCC_BODY_MAX", env.get("DCC_BODY_MAX", str(MANY))),
            fuz1_max=_positive_int("DCC_FUZ1_MAX", env.get("DCC_FUZ1_MAX", str(MANY))),
            fuz2_max=_positive_int("DCC_FUZ2_MAX", env.get("DCC_FUZ2_MAX", str(MANY))),
        )
        return cls(
            use_dcc=_flag(env.get("USE_DCC", "true")),
            local_tests_only=_flag(env.get("LOCAL_TESTS_ONLY", "false")),
            timeout=_positive_int("DCC_TIMEOUT", env.get("DCC_TIMEOUT", str(DEFAULT_TIMEOUT))),
            thresholds=thresholds,
            home=env.get("DCC_HOME") or None,
            dccifd_path=env.get("DCC_DCCIFD_PATH") or None,
            dccproc_path=env.get("DCC_PATH") or None,
            options=env.get("DCC_OPTIONS", DEFAULT_OPTIONS),
        )


def _is_rw_socket(path: str) -> bool:
    try:
        mode = os.stat(path).st_mode
    except OSError:
        return False
    return stat.S_ISSOCK(mode) and os.access(path, os.R_OK | os.W_OK)


def _is_executable(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)


def find_dccifd(config: DccConfig) -> Optional[str]:
    """Explicit socket path, else <home>/dccifd."""
    path = config.dccifd_path
    if not path and config.home and _is_rw_socket(os.path.join(config.home, "dccifd")):
        path = os.path.join(config.home, "dccifd")

    if not path or not _is_rw_socket(path):
        logger.debug("dcc: dccifd is not available: no r/w dccifd socket found")
        return None
    logger.debug("dcc: dccifd is available: %s", path)
    return path


def find_dccproc(config: DccConfig) -> Optional[str]:
    """Explicit executable, else <home>/bin/dccproc, else dccproc on PATH."""
    path = config.dccproc_path
    if not path and config.home and _is_executable(os.path.join(config.home, "bin", "dccproc")):
        path = os.path.join(config.home, "bin", "dccproc")
    if not path:
        path = shutil.which("dccproc")

    if not path or not _is_executable(path):
        logger.debug("dcc: dccproc is not available: no executable dccproc found")
        return None
    logger.debug("dcc: dccproc is available: %s", path)
    return path
