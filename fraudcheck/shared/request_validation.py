"""Validation of untrusted detection payloads.

Each validator returns every violated constraint, not just the first one, so
the 400 response can list them all.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional, Union
from urllib.parse import urlsplit

from fraudcheck.shared.detect_contract import (
    IMAGE_URI_PREFIX,
    REPORT_TYPES,
    TEXT_MAX_LENGTH,
    TEXT_MIN_LENGTH,
    FraudReport,
    ValidationIssue,
)


@dataclass(frozen=True)
class TextRequest:
    text: str
    kind: str = "text"


@dataclass(frozen=True)
class ImageRequest:
    image_uri: str
    kind: str = "image"


@dataclass(frozen=True)
class UrlRequest:
    url: str
    kind: str = "url"


AnalysisRequest = Union[TextRequest, ImageRequest, UrlRequest]


@dataclass
class ValidationOutcome:
    request: Optional[Any] = None
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues and self.request is not None


def _issue(field_name: str, reason: str) -> ValidationIssue:
    return {"field": field_name, "reason": reason}


def _require_object(payload: Any) -> List[ValidationIssue]:
    if not isinstance(payload, dict):
        return [_issue("body", "Request body must be a JSON object")]
    return []


def _string_field(payload: dict, name: str, issues: List[ValidationIssue]) -> Optional[str]:
    if name not in payload or payload[name] is None:
        issues.append(_issue(name, f"{name} is required"))
        return None
    value = payload[name]
    if not isinstance(value, str):
        issues.append(_issue(name, f"{name} must be a string"))
        return None
    return value


def text_length_issues(text: str) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []
    if len(text) < TEXT_MIN_LENGTH:
        issues.append(
            _issue("text", f"text must contain at least {TEXT_MIN_LENGTH} character(s)")
        )
    if len(text) > TEXT_MAX_LENGTH:
        issues.append(
            _issue("text", f"text must contain at most {TEXT_MAX_LENGTH} characters")
        )
    return issues


def validate_text(payload: Any) -> ValidationOutcome:
    issues = _require_object(payload)
    if issues:
        return ValidationOutcome(issues=issues)

    text = _string_field(payload, "text", issues)
    if text is not None:
        issues.extend(text_length_issues(text))
    if issues:
        return ValidationOutcome(issues=issues)
    return ValidationOutcome(request=TextRequest(text=text))


def validate_image(payload: Any) -> ValidationOutcome:
    issues = _require_object(payload)
    if issues:
        return ValidationOutcome(issues=issues)

    image_uri = _string_field(payload, "imageData", issues)
    if image_uri is not None and not image_uri.startswith(IMAGE_URI_PREFIX):
        issues.append(
            _issue(
                "imageData",
                "imageData is not a valid image data URI (expected 'data:image/<type>;base64,...')",
            )
        )
    if issues:
        return ValidationOutcome(issues=issues)
    return ValidationOutcome(request=ImageRequest(image_uri=image_uri))


def validate_url(payload: Any) -> ValidationOutcome:
    issues = _require_object(payload)
    if issues:
        return ValidationOutcome(issues=issues)

    url = _string_field(payload, "url", issues)
    if url is not None:
        url = url.strip()
        try:
            parts = urlsplit(url)
        except ValueError:
            # e.g. an unbalanced IPv6 bracket
            parts = None
        if parts is None or parts.scheme.lower() not in {"http", "https"} or not parts.netloc:
            issues.append(_issue("url", "url must be an absolute http(s) URL"))
    if issues:
        return ValidationOutcome(issues=issues)
    return ValidationOutcome(request=UrlRequest(url=url))


def validate_report(payload: Any) -> ValidationOutcome:
    issues = _require_object(payload)
    if issues:
        return ValidationOutcome(issues=issues)

    report_type = _string_field(payload, "type", issues)
    if report_type is not None and report_type not in REPORT_TYPES:
        issues.append(_issue("type", f"type must be one of {', '.join(REPORT_TYPES)}"))
    content = _string_field(payload, "content", issues)
    if content is not None and not content.strip():
        issues.append(_issue("content", "content must not be empty"))
    if issues:
        return ValidationOutcome(issues=issues)

    report: FraudReport = {"type": report_type, "content": content}  # type: ignore[typeddict-item]
    return ValidationOutcome(request=report)
