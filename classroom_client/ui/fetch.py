from __future__ import annotations

from datetime import date
import logging
from typing import Any

from classroom_client.cancellation import CancellationToken
from classroom_client.models import CourseWork
from classroom_client.services import ClassroomService
from classroom_client.ui.state import Event, FetchCompleted, FetchFailed, FetchRequest, ResourceKind

logger = logging.getLogger(__name__)


def sort_by_due_date(coursework: list[CourseWork]) -> list[CourseWork]:
    def key(item: CourseWork) -> tuple[bool, date]:
        if item.due_date is None:
            return True, date.max
        return False, item.due_date.to_date()

    return sorted(coursework, key=key)


class ViewFetcher:
    def __init__(self, service: ClassroomService):
        self._service = service

    def fetch(self, request: FetchRequest, cancel_token: CancellationToken | None = None) -> tuple[Any, ...]:
        if request.kind is ResourceKind.COURSES:
            return tuple(self._service.list_courses(cancel_token=cancel_token))

        course_id = request.course_id or ""
        if request.kind is ResourceKind.COURSEWORK:
            coursework = self._service.list_coursework(course_id, cancel_token=cancel_token)
            return tuple(sort_by_due_date(coursework))
        if request.kind is ResourceKind.GRADES:
            return tuple(self._service.list_grades(course_id, cancel_token=cancel_token))
        return tuple(self._service.list_announcements(course_id, cancel_token=cancel_token))

    def run(self, request: FetchRequest, cancel_token: CancellationToken | None = None) -> Event:
        try:
            items = self.fetch(request, cancel_token)
        except Exception as exc:
            logger.warning("Fetch %s for %s failed: %s", request.request_id, request.kind.value, exc)
            return FetchFailed(request_id=request.request_id, error=exc)
        logger.debug("Fetch %s for %s returned %d item(s)", request.request_id, request.kind.value, len(items))
        return FetchCompleted(request_id=request.request_id, items=items)
