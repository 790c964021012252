from __future__ import annotations

from typing import Any

from classroom_client.apis._paths import segment, update_mask
from classroom_client.cancellation import CancellationToken
from classroom_client.config import AppSettings
from classroom_client.http import ResilientClient
from classroom_client.models import Announcement


class AnnouncementsApi:
    def __init__(self, settings: AppSettings, http_client: ResilientClient):
        self._settings = settings
        self._http_client = http_client

    def list(
        self,
        course_id: str,
        page_size: int | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> list[Announcement]:
        items = self._http_client.list_all(
            f"/courses/{segment(course_id)}/announcements",
            "announcements",
            page_size=page_size or self._settings.page_size,
            cancel_token=cancel_token,
        )
        return [Announcement.from_api(item) for item in items]

    def get(
        self,
        course_id: str,
        announcement_id: str,
        cancel_token: CancellationToken | None = None,
    ) -> Announcement:
        payload = self._http_client.get_json(
            f"/courses/{segment(course_id)}/announcements/{segment(announcement_id)}",
            cancel_token=cancel_token,
        )
        return Announcement.from_api(payload)

    def patch(
        self,
        course_id: str,
        announcement_id: str,
        update: dict[str, Any],
        cancel_token: CancellationToken | None = None,
    ) -> Announcement:
        payload = self._http_client.patch_json(
            f"/courses/{segment(course_id)}/announcements/{segment(announcement_id)}",
            update,
            params={"updateMask": update_mask(update)},
            cancel_token=cancel_token,
        )
        return Announcement.from_api(payload)
