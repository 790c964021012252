from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, timezone
import re
from typing import Any

EXPIRY_LEEWAY = timedelta(seconds=10)

_FRACTION_PATTERN = re.compile(r"(\.\d{6})\d+")


def parse_rfc3339(value: str) -> datetime:
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION_PATTERN.sub(r"\1", text)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_rfc3339(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _optional_timestamp(payload: dict[str, Any], key: str) -> datetime | None:
    raw = payload.get(key)
    if not raw:
        return None
    try:
        return parse_rfc3339(str(raw))
    except ValueError:
        return None


@dataclass(frozen=True)
class Credential:
    access_token: str
    refresh_token: str
    expiry: datetime
    token_type: str = "Bearer"
    scopes: tuple[str, ...] = ()

    def is_expired(self, now: datetime | None = None) -> bool:
        current = now or datetime.now(timezone.utc)
        return current >= self.expiry - EXPIRY_LEEWAY

    def refreshed(
        self,
        access_token: str,
        expiry: datetime,
        refresh_token: str | None = None,
        scopes: tuple[str, ...] | None = None,
    ) -> "Credential":
        return replace(
            self,
            access_token=access_token,
            expiry=expiry,
            refresh_token=refresh_token or self.refresh_token,
            scopes=scopes or self.scopes,
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expiry": format_rfc3339(self.expiry),
            "token_type": self.token_type,
            "scope": " ".join(self.scopes),
        }

    @staticmethod
    def from_json(payload: dict[str, Any]) -> "Credential":
        access_token = payload.get("access_token")
        expiry = payload.get("expiry")
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("access_token is missing")
        if not isinstance(expiry, str) or not expiry:
            raise ValueError("expiry is missing")
        return Credential(
            access_token=access_token,
            refresh_token=str(payload.get("refresh_token") or ""),
            expiry=parse_rfc3339(expiry),
            token_type=str(payload.get("token_type") or "Bearer"),
            scopes=tuple(str(payload.get("scope") or "").split()),
        )

    @staticmethod
    def from_token_response(payload: dict[str, Any], now: datetime | None = None) -> "Credential":
        issued_at = now or datetime.now(timezone.utc)
        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("Token response did not include an access_token")
        expires_in = int(payload.get("expires_in") or 3600)
        return Credential(
            access_token=access_token,
            refresh_token=str(payload.get("refresh_token") or ""),
            expiry=issued_at + timedelta(seconds=expires_in),
            token_type=str(payload.get("token_type") or "Bearer"),
            scopes=tuple(str(payload.get("scope") or "").split()),
        )


@dataclass(frozen=True)
class AuthState:
    is_signed_in: bool
    token_path: str
    expires_at: datetime | None = None
    is_expired: bool = False
    has_refresh_token: bool = False
    problem: str | None = None


@dataclass(frozen=True)
class Date:
    year: int
    month: int
    day: int

    @staticmethod
    def from_api(payload: Any) -> "Date | None":
        if not isinstance(payload, dict) or not payload.get("year"):
            return None
        return Date(
            year=int(payload.get("year", 0)),
            month=int(payload.get("month", 1)),
            day=int(payload.get("day", 1)),
        )

    def to_date(self) -> date:
        return date(self.year, self.month or 1, self.day or 1)

    def __str__(self) -> str:
        return f"{self.year}-{self.month:02d}-{self.day:02d}"


@dataclass(frozen=True)
class TimeOfDay:
    hours: int = 0
    minutes: int = 0

    @staticmethod
    def from_api(payload: Any) -> "TimeOfDay | None":
        if not isinstance(payload, dict):
            return None
        return TimeOfDay(hours=int(payload.get("hours", 0)), minutes=int(payload.get("minutes", 0)))

    def __str__(self) -> str:
        return f"{self.hours:02d}:{self.minutes:02d}"


@dataclass(frozen=True)
class Course:
    id: str
    name: str
    section: str = ""
    description_heading: str = ""
    room: str = ""
    course_state: str = ""
    alternate_link: str = ""

    @property
    def is_active(self) -> bool:
        return self.course_state == "ACTIVE"

    @staticmethod
    def from_api(payload: dict[str, Any]) -> "Course":
        return Course(
            id=str(payload.get("id", "")),
            name=str(payload.get("name", "")),
            section=str(payload.get("section", "")),
            description_heading=str(payload.get("descriptionHeading", "")),
            room=str(payload.get("room", "")),
            course_state=str(payload.get("courseState", "")),
            alternate_link=str(payload.get("alternateLink", "")),
        )


@dataclass(frozen=True)
class CourseWork:
    id: str
    course_id: str
    title: str
    description: str = ""
    state: str = ""
    work_type: str = ""
    max_points: float | None = None
    due_date: Date | None = None
    due_time: TimeOfDay | None = None
    alternate_link: str = ""

    @property
    def is_published(self) -> bool:
        return self.state == "PUBLISHED"

    def is_overdue(self, today: date | None = None) -> bool:
        if self.due_date is None:
            return False
        return (today or date.today()) > self.due_date.to_date()

    @property
    def due_label(self) -> str:
        if self.due_date is None:
            return "No due date"
        if self.due_time is None:
            return str(self.due_date)
        return f"{self.due_date} {self.due_time}"

    @staticmethod
    def from_api(payload: dict[str, Any]) -> "CourseWork":
        max_points = payload.get("maxPoints")
        return CourseWork(
            id=str(payload.get("id", "")),
            course_id=str(payload.get("courseId", "")),
            title=str(payload.get("title", "")),
            description=str(payload.get("description", "")),
            state=str(payload.get("state", "")),
            work_type=str(payload.get("workType", "")),
            max_points=float(max_points) if max_points is not None else None,
            due_date=Date.from_api(payload.get("dueDate")),
            due_time=TimeOfDay.from_api(payload.get("dueTime")),
            alternate_link=str(payload.get("alternateLink", "")),
        )


@dataclass(frozen=True)
class StudentSubmission:
    id: str
    course_id: str
    course_work_id: str
    user_id: str = ""
    state: str = ""
    assigned_grade: float | None = None
    draft_grade: float | None = None
    late: bool = False
    alternate_link: str = ""
    update_time: datetime | None = None
    attachments: tuple[dict[str, Any], ...] = field(default_factory=tuple)

    @property
    def is_returned(self) -> bool:
        return self.state == "RETURNED"

    @staticmethod
    def from_api(payload: dict[str, Any]) -> "StudentSubmission":
        assignment = payload.get("assignmentSubmission")
        attachments: tuple[dict[str, Any], ...] = ()
        if isinstance(assignment, dict) and isinstance(assignment.get("attachments"), list):
            attachments = tuple(a for a in assignment["attachments"] if isinstance(a, dict))
        assigned = payload.get("assignedGrade")
        draft = payload.get("draftGrade")
        return StudentSubmission(
            id=str(payload.get("id", "")),
            course_id=str(payload.get("courseId", "")),
            course_work_id=str(payload.get("courseWorkId", "")),
            user_id=str(payload.get("userId", "")),
            state=str(payload.get("state", "")),
            assigned_grade=float(assigned) if assigned is not None else None,
            draft_grade=float(draft) if draft is not None else None,
            late=bool(payload.get("late", False)),
            alternate_link=str(payload.get("alternateLink", "")),
            update_time=_optional_timestamp(payload, "updateTime"),
            attachments=attachments,
        )


@dataclass(frozen=True)
class Announcement:
    id: str
    course_id: str
    text: str
    state: str = ""
    alternate_link: str = ""
    creation_time: datetime | None = None
    update_time: datetime | None = None

    @property
    def headline(self) -> str:
        first_line = self.text.strip().splitlines()[0] if self.text.strip() else ""
        if len(first_line) > 80:
            return first_line[:77] + "..."
        return first_line or "(no text)"

    @staticmethod
    def from_api(payload: dict[str, Any]) -> "Announcement":
        return Announcement(
            id=str(payload.get("id", "")),
            course_id=str(payload.get("courseId", "")),
            text=str(payload.get("text", "")),
            state=str(payload.get("state", "")),
            alternate_link=str(payload.get("alternateLink", "")),
            creation_time=_optional_timestamp(payload, "creationTime"),
            update_time=_optional_timestamp(payload, "updateTime"),
        )


@dataclass(frozen=True)
class Attachment:
    """Opaque reference to material stored elsewhere (Drive, YouTube, the web)."""

    kind: str
    reference: str

    KINDS = ("link", "driveFile", "youtubeVideo", "form")

    def __post_init__(self) -> None:
        if self.kind not in self.KINDS:
            raise ValueError(f"Unsupported attachment kind: {self.kind}")
        if not self.reference.strip():
            raise ValueError("Attachment reference is required")

    def to_api(self) -> dict[str, Any]:
        if self.kind == "link":
            return {"link": {"url": self.reference}}
        if self.kind == "form":
            return {"form": {"formUrl": self.reference}}
        return {self.kind: {"id": self.reference}}


@dataclass(frozen=True)
class GradeEntry:
    course_work_id: str
    title: str
    grade: float
    max_points: float | None
    feedback: str

    def to_json(self) -> dict[str, Any]:
        return {
            "courseWorkId": self.course_work_id,
            "assignment": self.title,
            "grade": self.grade,
            "maxPoints": self.max_points,
            "feedback": self.feedback,
        }
