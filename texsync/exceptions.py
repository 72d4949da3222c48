"""Typed exception hierarchy for texsync.

Raise these instead of bare HTTPException so that:
- Service code is testable without a FastAPI request context
- Error codes are declared in one place
- main.py's AppError handler converts them to consistent JSON responses
"""

from __future__ import annotations


class AppError(Exception):
    """Base application error — caught by FastAPI exception handler in main.py."""

    status_code: int = 500
    detail: str = "Internal server error"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.__class__.detail
        super().__init__(self.detail)


class NotFoundError(AppError):
    """Resource does not exist."""

    status_code = 404
    detail = "Not found"


class ForbiddenError(AppError):
    """Caller is not allowed to perform this action."""

    status_code = 403
    detail = "Forbidden"


class ConfigurationMissingError(AppError):
    """A setting required for this operation is not configured. Never retried."""

    status_code = 500
    detail = "Service is not configured"


class ServiceUnavailableError(AppError):
    """The compile worker could not be reached or answered with an HTML error page."""

    status_code = 503
    detail = "LaTeX service unavailable"


class TargetFileNotFoundError(AppError):
    """The compile target does not exist in the repository."""

    status_code = 404
    detail = "Target file not found"

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Target file not found: {path}")


class StructuredCompileError(AppError):
    """The worker reported a compile failure as JSON, optionally with a build log."""

    status_code = 422
    detail = "LaTeX compilation failed"

    def __init__(self, message: str | None = None, log: str | None = None) -> None:
        self.message = message or self.__class__.detail
        self.log = log
        detail = self.message
        if log:
            detail += "\n\nLog:\n" + log
        super().__init__(detail)


class RawServiceError(AppError):
    """The worker failed with a non-JSON, non-HTML body (already truncated)."""

    status_code = 502
    detail = "LaTeX compilation failed"

    def __init__(self, text: str | None = None) -> None:
        self.text = text or ""
        super().__init__(text)


class GitOperationError(AppError):
    """A git subprocess failed or timed out."""

    status_code = 500
    detail = "Git operation failed"

    def __init__(self, stage: str, stderr: str = "", timed_out: bool = False) -> None:
        self.stage = stage
        self.stderr = stderr
        self.timed_out = timed_out
        reason = "timed out" if timed_out else (stderr.strip() or "failed")
        super().__init__(f"git {stage} {reason}")
