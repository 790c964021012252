from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Callable

import requests

from classroom_client.cancellation import CancellationToken, cancellable_sleep
from classroom_client.config import AppSettings

logger = logging.getLogger(__name__)

TokenSource = Callable[[], str]
Sleeper = Callable[[float, "CancellationToken | None"], None]


class ApiHttpError(RuntimeError):
    retryable = False

    def __init__(self, status_code: int, message: str, status: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.status = status


class NotFoundError(ApiHttpError):
    pass


class ForbiddenError(ApiHttpError):
    pass


class RateLimitedError(ApiHttpError):
    retryable = True


class ServerError(ApiHttpError):
    retryable = True


@dataclass(frozen=True)
class RequestAttempt:
    number: int
    delay: float
    outcome: str


def classify_response(response: requests.Response) -> ApiHttpError:
    status_code = response.status_code
    message, status = _parse_error_body(response)
    text = f"HTTP {status_code}: {message}"
    if status_code == 404:
        return NotFoundError(status_code, text, status)
    if status_code == 403:
        return ForbiddenError(status_code, text, status)
    if status_code == 429:
        return RateLimitedError(status_code, text, status)
    if status_code >= 500:
        return ServerError(status_code, text, status)
    return ApiHttpError(status_code, text, status)


def _parse_error_body(response: requests.Response) -> tuple[str, str]:
    raw_text = response.text[:500]
    try:
        payload = response.json()
    except ValueError:
        return raw_text or response.reason or "Request failed", ""

    if isinstance(payload, dict):
        error = payload.get("error", payload)
        if isinstance(error, dict):
            message = str(error.get("message") or "").strip()
            status = str(error.get("status") or "").strip()
            return message or raw_text, status
        if isinstance(error, str):
            return str(payload.get("error_description") or error), ""
    return raw_text, ""


class ResilientClient:
    def __init__(
        self,
        settings: AppSettings,
        token_source: TokenSource,
        session: requests.Session | None = None,
        sleep: Sleeper | None = None,
    ):
        self._settings = settings
        self._token_source = token_source
        self._sleep = sleep or cancellable_sleep
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Accept": "application/json",
                "Content-Type": "application/json",
            }
        )

    def get_json(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> dict[str, Any]:
        return self._request("GET", path, params=params, cancel_token=cancel_token)

    def patch_json(
        self,
        path: str,
        payload: dict[str, Any],
        params: dict[str, Any] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> dict[str, Any]:
        return self._request("PATCH", path, params=params, payload=payload, cancel_token=cancel_token)

    def list_all(
        self,
        path: str,
        items_key: str,
        page_size: int | None = None,
        params: dict[str, Any] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        page_token = ""
        page_number = 0
        while True:
            query = dict(params or {})
            if page_size:
                query["pageSize"] = page_size
            if page_token:
                query["pageToken"] = page_token

            page_number += 1
            page = self._request("GET", path, params=query, cancel_token=cancel_token)
            page_items = page.get(items_key) or []
            items.extend(item for item in page_items if isinstance(item, dict))

            page_token = str(page.get("nextPageToken") or "")
            if not page_token:
                logger.debug("Listed %d %s from %s in %d page(s)", len(items), items_key, path, page_number)
                return items

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> dict[str, Any]:
        url = f"{self._settings.base_url}{path}"
        attempts = self._settings.retry_attempts + 1
        delay = self._settings.initial_backoff_seconds

        for attempt in range(1, attempts + 1):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            headers = {"Authorization": f"Bearer {self._token_source()}"}
            try:
                response = self._session.request(
                    method,
                    url,
                    headers=headers,
                    params=params,
                    json=payload,
                    timeout=self._settings.timeout_seconds,
                )
            except requests.RequestException as error:
                raise ApiHttpError(status_code=0, message=f"Request failed: {error}") from error

            if response.status_code < 400:
                if not response.content:
                    return {}
                try:
                    return response.json()
                except ValueError as error:
                    raise ApiHttpError(response.status_code, "Invalid JSON response") from error

            error = classify_response(response)
            if not error.retryable or attempt == attempts:
                raise error

            record = RequestAttempt(number=attempt, delay=delay, outcome=type(error).__name__)
            logger.warning(
                "%s %s failed (%s, attempt %d/%d); retrying in %.1fs",
                method,
                path,
                record.outcome,
                record.number,
                attempts,
                record.delay,
            )
            self._sleep(delay, cancel_token)
            delay = min(delay * 2, self._settings.max_backoff_seconds)

        raise ApiHttpError(status_code=0, message="Request failed")
