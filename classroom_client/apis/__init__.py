from .announcements_api import AnnouncementsApi
from .courses_api import CoursesApi
from .coursework_api import CourseWorkApi
from .submissions_api import SubmissionsApi

__all__ = ["AnnouncementsApi", "CoursesApi", "CourseWorkApi", "SubmissionsApi"]
