from typing import Optional

from fastapi import HTTPException, status


class DomainError(ValueError):
    """Base class for errors a caller can act on.

    ``code`` is a stable machine-readable identifier, ``status_code`` the
    HTTP status the routers answer with.
    """

    code = "invalid_request"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: Optional[str] = None, fields: Optional[list[str]] = None):
        self.message = message or self.__class__.__doc__ or self.code
        self.fields = list(fields) if fields else []
        super().__init__(self.message)

    @property
    def detail(self) -> dict:
        detail = {"code": self.code, "message": self.message}
        if self.fields:
            detail["fields"] = self.fields
        return detail


class NotFound(DomainError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ValidationFailed(DomainError):
    code = "validation_failed"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class Conflict(DomainError):
    code = "conflict"
    status_code = status.HTTP_409_CONFLICT


def to_http_exception(exc: DomainError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.detail)
