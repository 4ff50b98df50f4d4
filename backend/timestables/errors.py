"""
HTTP error taxonomy.

Routes and services raise these; the handlers in main.py render them as
{"ok": false, "error": ...}. Store failures are not wrapped here: a raw
SQLAlchemyError reaches its own handler and becomes a 500.
"""

from fastapi import HTTPException


class AuthenticationMissing(HTTPException):
    """No session cookie, or one that cannot be verified."""

    def __init__(self, detail: str = "Not logged in"):
        super().__init__(status_code=401, detail=detail)


class AuthorizationDenied(HTTPException):
    """Role or class-ownership check failed."""

    def __init__(self, detail: str = "Not allowed"):
        super().__init__(status_code=403, detail=detail)


class ValidationFailed(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=400, detail=detail)


class NotFound(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=404, detail=detail)


class Conflict(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=409, detail=detail)
