from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


class ConfigurationError(ValueError):
    pass


DEFAULT_SCOPES = (
    "https://www.googleapis.com/auth/classroom.courses.readonly",
    "https://www.googleapis.com/auth/classroom.coursework.me",
    "https://www.googleapis.com/auth/classroom.coursework.students",
    "https://www.googleapis.com/auth/classroom.announcements.readonly",
)


@dataclass(frozen=True)
class AppSettings:
    client_id: str
    client_secret: str
    scopes: tuple[str, ...]
    base_url: str
    auth_url: str
    token_url: str
    timeout_seconds: int
    retry_attempts: int
    initial_backoff_seconds: float
    max_backoff_seconds: float
    auth_timeout_seconds: float
    page_size: int
    token_path: str
    redirect_uri: str
    log_level: str
    log_file: str

    @staticmethod
    def from_env() -> "AppSettings":
        _load_dotenv_if_present()

        raw_scopes = os.getenv("CLASSROOM_SCOPES", "").strip()
        scopes = tuple(s.strip() for s in raw_scopes.split(",") if s.strip()) or DEFAULT_SCOPES

        config_dir = default_config_dir()

        settings = AppSettings(
            client_id=os.getenv("CLASSROOM_CLIENT_ID", "").strip(),
            client_secret=os.getenv("CLASSROOM_CLIENT_SECRET", "").strip(),
            scopes=scopes,
            base_url=os.getenv("CLASSROOM_BASE_URL", "https://classroom.googleapis.com/v1").rstrip("/"),
            auth_url=os.getenv("CLASSROOM_AUTH_URL", "https://accounts.google.com/o/oauth2/auth").strip(),
            token_url=os.getenv("CLASSROOM_TOKEN_URL", "https://oauth2.googleapis.com/token").strip(),
            timeout_seconds=_int_env("CLASSROOM_TIMEOUT_SECONDS", 30),
            retry_attempts=_int_env("CLASSROOM_RETRY_ATTEMPTS", 3),
            initial_backoff_seconds=_float_env("CLASSROOM_INITIAL_BACKOFF_SECONDS", 1.0),
            max_backoff_seconds=_float_env("CLASSROOM_MAX_BACKOFF_SECONDS", 32.0),
            auth_timeout_seconds=_float_env("CLASSROOM_AUTH_TIMEOUT_SECONDS", 60.0),
            page_size=_int_env("CLASSROOM_PAGE_SIZE", 100),
            token_path=os.getenv("CLASSROOM_TOKEN_PATH", str(config_dir / "token.json")).strip(),
            redirect_uri=os.getenv("CLASSROOM_REDIRECT_URI", "http://localhost").strip(),
            log_level=os.getenv("CLASSROOM_LOG_LEVEL", "INFO").strip().upper(),
            log_file=os.getenv("CLASSROOM_LOG_FILE", str(config_dir / "classroom.log")).strip(),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        invalid = []
        if not self.scopes:
            invalid.append("CLASSROOM_SCOPES")
        for name, value in (
            ("CLASSROOM_BASE_URL", self.base_url),
            ("CLASSROOM_AUTH_URL", self.auth_url),
            ("CLASSROOM_TOKEN_URL", self.token_url),
        ):
            if not value.startswith(("http://", "https://")):
                invalid.append(name)
        if invalid:
            raise ConfigurationError("Invalid or missing settings: " + ", ".join(invalid))

        if self.timeout_seconds <= 0:
            raise ConfigurationError("CLASSROOM_TIMEOUT_SECONDS must be greater than 0")

        if self.retry_attempts < 0:
            raise ConfigurationError("CLASSROOM_RETRY_ATTEMPTS must be 0 or greater")

        if self.initial_backoff_seconds < 0 or self.max_backoff_seconds < self.initial_backoff_seconds:
            raise ConfigurationError(
                "CLASSROOM_MAX_BACKOFF_SECONDS must be at least CLASSROOM_INITIAL_BACKOFF_SECONDS"
            )

        if self.auth_timeout_seconds <= 0:
            raise ConfigurationError("CLASSROOM_AUTH_TIMEOUT_SECONDS must be greater than 0")

        if not 1 <= self.page_size <= 1000:
            raise ConfigurationError("CLASSROOM_PAGE_SIZE must be between 1 and 1000")

        if not self.token_path:
            raise ConfigurationError("CLASSROOM_TOKEN_PATH must not be empty")

    def require_client(self) -> None:
        if not self.client_id:
            raise ConfigurationError(
                "Missing required setting: CLASSROOM_CLIENT_ID. Create an OAuth client of type "
                "'Desktop app' at https://console.cloud.google.com/apis/credentials and export "
                "CLASSROOM_CLIENT_ID (and CLASSROOM_CLIENT_SECRET if the client has one)."
            )


def default_config_dir() -> Path:
    base = os.getenv("XDG_CONFIG_HOME", "").strip()
    root = Path(base).expanduser() if base else Path.home() / ".config"
    return root / "classroom-client"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as error:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from error


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as error:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from error


ENV_FILE_NAME = ".env"
ENV_PREFIX = "CLASSROOM_"


def _load_dotenv_if_present() -> None:
    for path in _env_file_candidates():
        for key, value in read_env_file(path).items():
            os.environ.setdefault(key, value)


def _env_file_candidates() -> list[Path]:
    """Explicit file first, then the working directory, then the config directory."""
    explicit = os.getenv("CLASSROOM_ENV_FILE", "").strip()
    paths = [Path(explicit).expanduser()] if explicit else []
    paths += [Path.cwd() / ENV_FILE_NAME, default_config_dir() / ENV_FILE_NAME]
    return list(dict.fromkeys(path.absolute() for path in paths))


def read_env_file(path: Path) -> dict[str, str]:
    """Parse ``KEY=value`` lines, keeping only ``CLASSROOM_`` keys.

    Blank lines, ``#`` comments and an ``export`` prefix are accepted. A value
    wrapped in matching quotes is unquoted.
    """
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except FileNotFoundError:
        return {}
    except OSError as error:
        logger.warning("Ignoring unreadable env file %s: %s", path, error)
        return {}

    values: dict[str, str] = {}
    for raw_line in lines:
        line = raw_line.strip()
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        key, separator, value = line.partition("=")
        key = key.strip()
        if not separator or not key.startswith(ENV_PREFIX):
            continue
        values[key] = _unquote(value.strip())
    return values


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        return value[1:-1]
    return value
