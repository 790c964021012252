from __future__ import annotations

from enum import Enum
import json
import logging
import os
from pathlib import Path
import tempfile

from msal_extensions import CrossPlatLock

from classroom_client.models import Credential

logger = logging.getLogger(__name__)


class TokenErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    CORRUPT = "corrupt"
    EXPIRED_NO_REFRESH = "expired_no_refresh"
    REFRESH_FAILED = "refresh_failed"


class TokenError(RuntimeError):
    def __init__(self, kind: TokenErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class TokenExpiredError(TokenError):
    pass


class TokenStore:
    def __init__(self, path: str):
        self._path = Path(path).expanduser()
        self._lock_path = str(self._path) + ".lock"

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    def load(self) -> Credential:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError as error:
            raise TokenError(
                TokenErrorKind.NOT_FOUND,
                f"No saved credential at {self._path}. Run 'classroom auth login'.",
            ) from error
        except OSError as error:
            raise TokenError(TokenErrorKind.CORRUPT, f"Cannot read {self._path}: {error}") from error

        try:
            payload = json.loads(raw)
            if not isinstance(payload, dict):
                raise ValueError("credential file must contain a JSON object")
            return Credential.from_json(payload)
        except ValueError as error:
            raise TokenError(
                TokenErrorKind.CORRUPT,
                f"Saved credential at {self._path} is unreadable ({error}). Run 'classroom auth login'.",
            ) from error

    def save(self, credential: Credential) -> None:
        directory = self._path.parent
        directory.mkdir(parents=True, exist_ok=True)
        data = json.dumps(credential.to_json(), indent=2)

        with CrossPlatLock(self._lock_path):
            fd, temp_path = tempfile.mkstemp(prefix=".token-", suffix=".tmp", dir=str(directory))
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as temp_file:
                    temp_file.write(data)
                    temp_file.flush()
                    os.fsync(temp_file.fileno())
                os.chmod(temp_path, 0o600)
                os.replace(temp_path, self._path)
            except BaseException:
                try:
                    os.unlink(temp_path)
                except FileNotFoundError:
                    pass
                raise
        logger.info("Saved credential to %s", self._path)

    def clear(self) -> bool:
        if not self._path.parent.is_dir():
            return False
        with CrossPlatLock(self._lock_path):
            try:
                self._path.unlink()
            except FileNotFoundError:
                return False
        logger.info("Removed credential at %s", self._path)
        return True
