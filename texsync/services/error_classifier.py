"""Classify failed compile-worker responses.

The worker answers failures with JSON, an HTML page from a proxy in front of
it, or plain text. Classification precedence:

1. 404 whose body (raw or JSON ``error``) carries the target-not-found marker
2. HTML document — never JSON-parsed
3. JSON object — message plus optional log, truncated to the log budget
4. anything else — raw text, truncated
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Union

from texsync.exceptions import (
    RawServiceError,
    ServiceUnavailableError,
    StructuredCompileError,
    TargetFileNotFoundError,
)
from texsync.utils import truncate

TARGET_NOT_FOUND_MARKER = "Target file not found"
LOG_TRUNCATION_MARKER = "\n...(truncated)"
RAW_TRUNCATION_MARKER = "..."
DEFAULT_MESSAGE = "LaTeX compilation failed"


@dataclass(frozen=True)
class FileNotFound:
    path: str


@dataclass(frozen=True)
class ServiceUnavailableHtml:
    status: int
    message: str


@dataclass(frozen=True)
class StructuredError:
    message: str
    log: str | None = None


@dataclass(frozen=True)
class RawError:
    text: str


ErrorClassification = Union[FileNotFound, ServiceUnavailableHtml, StructuredError, RawError]


def looks_like_html(body: str) -> bool:
    head = body.lstrip()[:64].lower()
    return head.startswith("<!doctype") or head.startswith("<html")


def _parse_json_object(body: str) -> dict | None:
    if body.lstrip().startswith("<"):
        return None
    try:
        parsed = json.loads(body)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def classify_error_response(
    status: int,
    body: str,
    target_path: str,
    *,
    max_log_chars: int = 20_000,
    max_raw_chars: int = 500,
) -> ErrorClassification:
    html = looks_like_html(body)
    parsed = None if html else _parse_json_object(body)

    if status == 404:
        error_field = parsed.get("error") if parsed else None
        not_found_text = error_field if isinstance(error_field, str) else body
        if TARGET_NOT_FOUND_MARKER in not_found_text:
            return FileNotFound(path=target_path)

    if html:
        return ServiceUnavailableHtml(
            status=status,
            message=(
                f"LaTeX service returned an HTML error page (HTTP {status}). "
                "This usually indicates a proxy error, service outage, or misconfiguration."
            ),
        )

    if parsed is not None:
        message = parsed.get("error")
        if not isinstance(message, str) or not message:
            message = DEFAULT_MESSAGE
        log = parsed.get("log")
        if isinstance(log, str) and log:
            return StructuredError(message=message, log=truncate(log, max_log_chars, LOG_TRUNCATION_MARKER))
        return StructuredError(message=message)

    if not body.strip():
        return RawError(text=f"{DEFAULT_MESSAGE} with HTTP {status}")
    return RawError(text=truncate(body, max_raw_chars, RAW_TRUNCATION_MARKER))


def raise_for_classification(classification: ErrorClassification) -> None:
    """Raise the application error matching ``classification``."""
    if isinstance(classification, FileNotFound):
        raise TargetFileNotFoundError(classification.path)
    if isinstance(classification, ServiceUnavailableHtml):
        raise ServiceUnavailableError(classification.message)
    if isinstance(classification, StructuredError):
        raise StructuredCompileError(classification.message, classification.log)
    raise RawServiceError(classification.text)
