"""
Shaadi Mantrana — Service-layer exceptions.

Services raise these; the API layer turns them into ``HTTPException`` with
the matching status code (see ``mantrana.api.deps.raise_http``).
"""

from __future__ import annotations


class MantranaError(Exception):
    """Base class for expected, caller-facing failures."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationFailed(MantranaError):
    status_code = 400


class PermissionDenied(MantranaError):
    status_code = 403


class NotFoundError(MantranaError):
    status_code = 404

    def __init__(self, message: str, resource: str | None = None) -> None:
        super().__init__(message)
        self.resource = resource


class ConflictError(MantranaError):
    status_code = 409


class DailyLimitReached(MantranaError):
    status_code = 429

    def __init__(self, daily_like_count: int, limit: int) -> None:
        super().__init__(
            f"Daily like limit of {limit} reached. Try again tomorrow."
        )
        self.daily_like_count = daily_like_count
        self.limit = limit
