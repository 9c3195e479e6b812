"""Error taxonomy shared by the services, the HTTP layer and the session client.

Every error states whether the caller may retry. ``retryable=False`` means the
Presentation Layer must not offer the quiz again (or must not re-send the same
payload) and should redirect instead.
"""

from typing import Any, Dict, Optional


class QuizServiceError(Exception):
    status_code: int = 500
    code: str = "internal_error"
    retryable: bool = False

    def __init__(self, detail: str, **extra: Any):
        super().__init__(detail)
        self.detail = detail
        self.extra = {k: v for k, v in extra.items() if v is not None}

    def to_dict(self) -> Dict[str, Any]:
        body = {"detail": self.detail, "code": self.code, "retryable": self.retryable}
        body.update(self.extra)
        return body


class ValidationError(QuizServiceError):
    """Missing required answer or malformed payload. Safe to retry after correction."""

    status_code = 400
    code = "validation_error"
    retryable = True


class AuthenticationError(QuizServiceError):
    status_code = 401
    code = "not_authenticated"


class AccessDeniedError(QuizServiceError):
    status_code = 403
    code = "access_denied"


class NotFoundError(QuizServiceError):
    status_code = 404
    code = "not_found"


class NotAvailableError(QuizServiceError):
    """The quiz window is closed, not yet open, or the quiz cannot be taken."""

    status_code = 409
    code = "not_available"


class AlreadyCompletedError(QuizServiceError):
    status_code = 409
    code = "already_completed"

    def __init__(self, detail: str = "Quiz already completed", attempt_id: Optional[int] = None):
        super().__init__(detail, attempt_id=attempt_id)
        self.attempt_id = attempt_id


class ConcurrencyConflictError(AlreadyCompletedError):
    """A second near-simultaneous submission lost the race to the first one."""


class IntegrityError(QuizServiceError):
    status_code = 422
    code = "integrity_error"


class TransientPersistenceError(QuizServiceError):
    status_code = 503
    code = "persistence_unavailable"
    retryable = True


class CatalogUnavailableError(QuizServiceError):
    status_code = 503
    code = "catalog_unavailable"
    retryable = True


_BY_CODE = {
    cls.code: cls
    for cls in (
        ValidationError,
        AuthenticationError,
        AccessDeniedError,
        NotFoundError,
        NotAvailableError,
        AlreadyCompletedError,
        IntegrityError,
        TransientPersistenceError,
        CatalogUnavailableError,
    )
}


def error_from_payload(status_code: int, payload: Dict[str, Any]) -> QuizServiceError:
    """Rebuild a typed error from a JSON error body returned by the service."""
    code = payload.get("code")
    detail = payload.get("detail") or f"HTTP {status_code}"
    cls = _BY_CODE.get(code)
    if cls is AlreadyCompletedError:
        return AlreadyCompletedError(detail, attempt_id=payload.get("attempt_id"))
    if cls is not None:
        extra = {k: v for k, v in payload.items() if k not in ("detail", "code", "retryable")}
        return cls(detail, **extra)
    if status_code >= 500:
        return TransientPersistenceError(detail)
    return QuizServiceError(detail)
