from __future__ import annotations

import logging

from classroom_client.apis import AnnouncementsApi, CoursesApi, CourseWorkApi, SubmissionsApi
from classroom_client.auth import CredentialManager
from classroom_client.cancellation import CancellationToken
from classroom_client.config import AppSettings
from classroom_client.http import ForbiddenError, NotFoundError, ResilientClient
from classroom_client.models import (
    Announcement,
    Attachment,
    AuthState,
    Course,
    CourseWork,
    GradeEntry,
    StudentSubmission,
)

logger = logging.getLogger(__name__)


class ClassroomService:
    def __init__(
        self,
        credential_manager: CredentialManager,
        courses_api: CoursesApi,
        coursework_api: CourseWorkApi,
        submissions_api: SubmissionsApi,
        announcements_api: AnnouncementsApi,
    ):
        self._credential_manager = credential_manager
        self._courses_api = courses_api
        self._coursework_api = coursework_api
        self._submissions_api = submissions_api
        self._announcements_api = announcements_api

    def auth_state(self) -> AuthState:
        return self._credential_manager.get_auth_state()

    def has_credential(self) -> bool:
        return self._credential_manager.has_credential()

    def sign_in(self, cancel_token: CancellationToken | None = None) -> AuthState:
        return self._credential_manager.sign_in(cancel_token)

    def sign_out(self) -> bool:
        return self._credential_manager.sign_out()

    def list_courses(
        self,
        active_only: bool = True,
        cancel_token: CancellationToken | None = None,
    ) -> list[Course]:
        courses = self._courses_api.list(cancel_token=cancel_token)
        if active_only:
            return [course for course in courses if course.is_active]
        return courses

    def get_course(self, course_id: str, cancel_token: CancellationToken | None = None) -> Course:
        return self._courses_api.get(course_id, cancel_token=cancel_token)

    def list_coursework(
        self,
        course_id: str,
        published_only: bool = True,
        cancel_token: CancellationToken | None = None,
    ) -> list[CourseWork]:
        coursework = self._coursework_api.list(course_id, cancel_token=cancel_token)
        if published_only:
            return [item for item in coursework if item.is_published]
        return coursework

    def list_announcements(
        self,
        course_id: str,
        cancel_token: CancellationToken | None = None,
    ) -> list[Announcement]:
        return self._announcements_api.list(course_id, cancel_token=cancel_token)

    def list_grades(
        self,
        course_id: str,
        cancel_token: CancellationToken | None = None,
    ) -> list[GradeEntry]:
        grades: list[GradeEntry] = []
        for coursework in self.list_coursework(course_id, cancel_token=cancel_token):
            try:
                submission = self._submissions_api.get_my_submission(course_id, coursework.id, cancel_token=cancel_token)
            except (NotFoundError, ForbiddenError) as error:
                logger.info("No submission visible for coursework %s: %s", coursework.id, error)
                continue

            entry = self._grade_entry(coursework, submission)
            if entry is not None:
                grades.append(entry)
        return grades

    def submit_attachment(
        self,
        course_id: str,
        course_work_id: str,
        attachment: Attachment,
        cancel_token: CancellationToken | None = None,
    ) -> StudentSubmission:
        submission = self._submissions_api.get_my_submission(course_id, course_work_id, cancel_token=cancel_token)
        logger.info(
            "Attaching %s to submission %s (current state %s)",
            attachment.kind,
            submission.id,
            submission.state,
        )
        attachments = list(submission.attachments) + [attachment.to_api()]
        return self._submissions_api.patch(
            course_id,
            course_work_id,
            submission.id,
            {"assignmentSubmission": {"attachments": attachments}},
            cancel_token=cancel_token,
        )

    @staticmethod
    def _grade_entry(coursework: CourseWork, submission: StudentSubmission) -> GradeEntry | None:
        grade = submission.assigned_grade
        if grade is None:
            grade = submission.draft_grade
        if grade is None:
            return None

        if submission.is_returned:
            feedback = "Returned"
        elif submission.state == "TURNED_IN":
            feedback = "Graded"
        else:
            feedback = "Not returned"

        return GradeEntry(
            course_work_id=coursework.id,
            title=coursework.title,
            grade=grade,
            max_points=coursework.max_points,
            feedback=feedback,
        )


def build_service(settings: AppSettings | None = None) -> ClassroomService:
    settings = settings or AppSettings.from_env()
    credential_manager = CredentialManager(settings)
    http_client = ResilientClient(settings, token_source=credential_manager.access_token)
    return ClassroomService(
        credential_manager=credential_manager,
        courses_api=CoursesApi(settings, http_client),
        coursework_api=CourseWorkApi(settings, http_client),
        submissions_api=SubmissionsApi(settings, http_client),
        announcements_api=AnnouncementsApi(settings, http_client),
    )
