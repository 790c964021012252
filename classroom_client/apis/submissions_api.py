from __future__ import annotations

from typing import Any

from classroom_client.apis._paths import segment, update_mask
from classroom_client.cancellation import CancellationToken
from classroom_client.config import AppSettings
from classroom_client.http import ResilientClient
from classroom_client.models import StudentSubmission


class SubmissionsApi:
    def __init__(self, settings: AppSettings, http_client: ResilientClient):
        self._settings = settings
        self._http_client = http_client

    @staticmethod
    def _base_path(course_id: str, course_work_id: str) -> str:
        return f"/courses/{segment(course_id)}/courseWork/{segment(course_work_id)}/studentSubmissions"

    def list(
        self,
        course_id: str,
        course_work_id: str,
        page_size: int | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> list[StudentSubmission]:
        items = self._http_client.list_all(
            self._base_path(course_id, course_work_id),
            "studentSubmissions",
            page_size=page_size or self._settings.page_size,
            cancel_token=cancel_token,
        )
        return [StudentSubmission.from_api(item) for item in items]

    def get(
        self,
        course_id: str,
        course_work_id: str,
        submission_id: str,
        cancel_token: CancellationToken | None = None,
    ) -> StudentSubmission:
        payload = self._http_client.get_json(
            f"{self._base_path(course_id, course_work_id)}/{segment(submission_id)}",
            cancel_token=cancel_token,
        )
        return StudentSubmission.from_api(payload)

    def get_my_submission(
        self,
        course_id: str,
        course_work_id: str,
        cancel_token: CancellationToken | None = None,
    ) -> StudentSubmission:
        payload = self._http_client.get_json(
            f"{self._base_path(course_id, course_work_id)}/me",
            cancel_token=cancel_token,
        )
        return StudentSubmission.from_api(payload)

    def patch(
        self,
        course_id: str,
        course_work_id: str,
        submission_id: str,
        update: dict[str, Any],
        cancel_token: CancellationToken | None = None,
    ) -> StudentSubmission:
        payload = self._http_client.patch_json(
            f"{self._base_path(course_id, course_work_id)}/{segment(submission_id)}",
            update,
            params={"updateMask": update_mask(update)},
            cancel_token=cancel_token,
        )
        return StudentSubmission.from_api(payload)
