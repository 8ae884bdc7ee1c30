"""Fraud detection contract helpers.

This module documents the JSON shapes returned by the detection endpoints
(`/api/text-detect`, `/api/image-detect`, `/api/url-detect`) and shared by the
browser extension and the web UI.
It is intentionally stdlib-only so it can be imported anywhere without heavy deps.
"""

from __future__ import annotations

from typing import List, Literal, TypedDict


AnalysisKind = Literal["text", "image", "url"]
REPORT_TYPES = ("text", "image", "url")

TEXT_MIN_LENGTH = 1
TEXT_MAX_LENGTH = 10_000
IMAGE_URI_PREFIX = "data:image/"


class AnalysisResult(TypedDict, total=False):
    """Success body (200). The three core fields are always present."""

    isFraudulent: bool
    confidenceScore: float
    explanation: str
    threatTypes: List[str]


class ValidationIssue(TypedDict):
    field: str
    reason: str


class ValidationErrorResponse(TypedDict):
    error: str
    details: List[ValidationIssue]


class ProviderErrorResponse(TypedDict, total=False):
    error: str
    message: str
    code: str
    retryable: bool


class FraudReport(TypedDict):
    type: AnalysisKind
    content: str


ERROR_METHOD_NOT_ALLOWED = "Method not allowed. Use POST."
ERROR_INVALID_REQUEST = "Invalid request"
ERROR_INVALID_JSON = "Request body must be valid JSON"

# Per-kind 500 error text.
PROVIDER_FAILURE_ERRORS = {
    "text": "Failed to analyze text",
    "image": "Failed to analyze image",
    "url": "Failed to analyze URL",
}


def text_result_schema() -> dict:
    """JSON schema the provider must satisfy for text analysis."""

    return {
        "type": "object",
        "required": ["isFraudulent", "confidenceScore", "explanation"],
        "properties": {
            "isFraudulent": {
                "type": "boolean",
                "description": "Whether the text is likely fraudulent.",
            },
            "confidenceScore": {
                "type": "number",
                "minimum": 0.0,
                "maximum": 1.0,
                "description": "Probability (0-1) that the content is fraudulent.",
            },
            "explanation": {
                "type": "string",
                "description": "Why the content is considered fraudulent or safe.",
            },
        },
    }


def threat_result_schema() -> dict:
    """Schema for image/URL analysis, which also lists threat types."""

    schema = text_result_schema()
    schema["required"] = schema["required"] + ["threatTypes"]
    schema["properties"]["threatTypes"] = {
        "type": "array",
        "items": {"type": "string"},
        "description": "Detected threat types, e.g. 'Phishing Page', 'Fake Advertisement'.",
    }
    return schema
