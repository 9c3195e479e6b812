"""Course Catalog client.

The catalog owns courses, enrollments and instructor assignments. The quiz
service only asks yes/no questions about them.
"""

from typing import Iterable, Optional, Set, Tuple
import logging

import requests

from ..config import Settings
from ..errors import CatalogUnavailableError

logger = logging.getLogger(__name__)


class CourseCatalog:
    def course_exists(self, course_id: str) -> bool:
        raise NotImplementedError

    def is_enrolled(self, user_id: str, course_id: str) -> bool:
        raise NotImplementedError

    def is_instructor(self, user_id: str, course_id: str) -> bool:
        raise NotImplementedError


class DaprCourseCatalog(CourseCatalog):
    """Catalog reached through Dapr service invocation"""

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.base_url = settings.CATALOG_SERVICE_URL
        self.timeout = settings.CATALOG_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def _exists(self, path: str) -> bool:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Catalog call failed: GET {url}: {e}")
            raise CatalogUnavailableError("Course catalog unavailable") from e

        if response.status_code == 404:
            return False
        if response.status_code >= 500:
            logger.error(f"Catalog returned {response.status_code} for GET {url}")
            raise CatalogUnavailableError("Course catalog unavailable")
        return response.ok

    def course_exists(self, course_id: str) -> bool:
        return self._exists(f"/course/{course_id}")

    def is_enrolled(self, user_id: str, course_id: str) -> bool:
        return self._exists(f"/course/{course_id}/students/{user_id}")

    def is_instructor(self, user_id: str, course_id: str) -> bool:
        return self._exists(f"/course/{course_id}/instructors/{user_id}")


class StaticCourseCatalog(CourseCatalog):
    """In-memory catalog for local runs and tests"""

    def __init__(
        self,
        courses: Iterable[str] = (),
        enrollments: Iterable[Tuple[str, str]] = (),
        instructors: Iterable[Tuple[str, str]] = (),
    ):
        self.courses: Set[str] = set(courses)
        # (user_id, course_id) pairs
        self.enrollments: Set[Tuple[str, str]] = set(enrollments)
        self.instructors: Set[Tuple[str, str]] = set(instructors)
        self.courses.update(c for _, c in self.enrollments)
        self.courses.update(c for _, c in self.instructors)

    def enroll(self, user_id: str, course_id: str):
        self.courses.add(course_id)
        self.enrollments.add((user_id, course_id))

    def assign_instructor(self, user_id: str, course_id: str):
        self.courses.add(course_id)
        self.instructors.add((user_id, course_id))

    def course_exists(self, course_id: str) -> bool:
        return course_id in self.courses

    def is_enrolled(self, user_id: str, course_id: str) -> bool:
        return (user_id, course_id) in self.enrollments

    def is_instructor(self, user_id: str, course_id: str) -> bool:
        return (user_id, course_id) in self.instructors
