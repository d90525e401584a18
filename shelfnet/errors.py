"""Domain failures raised by the services and mapped to HTTP responses in main."""

from __future__ import annotations


class ShelfnetError(Exception):
    """Base class for every typed domain failure."""

    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(ShelfnetError):
    status_code = 404


class DuplicateError(ShelfnetError):
    status_code = 409

    def __init__(self, detail: str, existing_id: int | None = None):
        super().__init__(detail)
        self.existing_id = existing_id


class AlreadyFollowingError(DuplicateError):
    pass


class ValidationError(ShelfnetError):
    status_code = 400


class UnauthorizedError(ShelfnetError):
    status_code = 403
