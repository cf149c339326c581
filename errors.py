"""
Error kinds raised by the borrowing domain, the access policy and the stores.

Each kind carries the HTTP status it is reported with; main.py installs a
single handler that turns any LibraryError into {"detail": ...}.
"""


class LibraryError(Exception):
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(LibraryError):
    status_code = 404


class Conflict(LibraryError):
    status_code = 409


class Forbidden(LibraryError):
    status_code = 403


class Unauthorized(LibraryError):
    status_code = 401


class BadRequest(LibraryError):
    status_code = 400
