"""Detection orchestration: validate -> provider (with fallback) -> normalize.

Each `analyze_*` coroutine takes the raw JSON body and returns
`(status_code, body)`:
  - 400 {error, details}          validation failed (every violated constraint)
  - 200 AnalysisResult            provider succeeded (never partially populated)
  - 500 {error, message, code, retryable}
                                  both attempts / the fatal attempt failed
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Tuple
from uuid import uuid4

from fraudcheck.shared.detect_contract import (
    ERROR_INVALID_REQUEST,
    PROVIDER_FAILURE_ERRORS,
    AnalysisResult,
    ProviderErrorResponse,
    ValidationErrorResponse,
    text_result_schema,
    threat_result_schema,
)
from fraudcheck.shared.fallback import FallbackExecutor, ProviderCallError, provider_error_meta
from fraudcheck.shared.request_validation import (
    ImageRequest,
    TextRequest,
    UrlRequest,
    ValidationOutcome,
    validate_image,
    validate_text,
    validate_url,
)

LOGGER = logging.getLogger(__name__)

Invoke = Callable[[str, Dict[str, Any], Dict[str, Any]], Awaitable[Dict[str, Any]]]
ServiceResponse = Tuple[int, Dict[str, Any]]

MAX_THREAT_TYPES = 10


TEXT_PROMPT = (
    "You are an expert fraud detection specialist. Analyze the following text for signs "
    "of fraud, scams, phishing or deception.\n"
    '"""\n{text}\n"""\n'
    "Respond ONLY with a JSON object matching the provided schema:\n"
    "- isFraudulent: true if this is likely a scam or fraud\n"
    "- confidenceScore: probability (0-1) that the content is fraudulent\n"
    "- explanation: markdown explanation covering the overall assessment, red flags, "
    "safety signals and recommended actions"
)

IMAGE_PROMPT = (
    "You are an expert fraud detection specialist. Analyze the attached image (screenshot, "
    "advertisement, message or web page) for signs of fraud, scams or phishing.\n"
    "Respond ONLY with a JSON object matching the provided schema:\n"
    "- isFraudulent, confidenceScore (probability 0-1 that it is fraudulent),\n"
    "- explanation: markdown explanation of the indicators found,\n"
    "- threatTypes: detected threat types (e.g. 'Fake Advertisement', 'Phishing Page', "
    "'Investment Scam'); empty when safe"
)

URL_PROMPT = (
    "You are a cybersecurity expert specializing in URL threat analysis. Assess whether the "
    "following URL is likely malicious (phishing, malware, scam, lookalike domain).\n"
    "URL: {url}\n"
    "Respond ONLY with a JSON object matching the provided schema:\n"
    "- isFraudulent, confidenceScore (probability 0-1 that it is malicious),\n"
    "- explanation: markdown explanation of the assessment,\n"
    "- threatTypes: detected threat types; empty when safe"
)


def build_provider_input(request: Any) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Provider input/schema pair for a validated request."""

    if isinstance(request, TextRequest):
        return {"kind": "text", "text": request.text, "prompt": TEXT_PROMPT.format(text=request.text)}, text_result_schema()
    if isinstance(request, ImageRequest):
        return {"kind": "image", "imageData": request.image_uri, "prompt": IMAGE_PROMPT}, threat_result_schema()
    if isinstance(request, UrlRequest):
        return {"kind": "url", "url": request.url, "prompt": URL_PROMPT.format(url=request.url)}, threat_result_schema()
    raise TypeError(f"Unsupported request type: {type(request).__name__}")


def normalize_result(raw: Any, *, with_threats: bool = False) -> AnalysisResult:
    """Validate provider output and coerce it into a complete AnalysisResult."""

    if not isinstance(raw, dict):
        raise ValueError("AnalysisResult must be a JSON object")

    missing = [k for k in ("isFraudulent", "confidenceScore", "explanation") if k not in raw]
    if missing:
        raise ValueError(f"AnalysisResult missing fields: {', '.join(missing)}")

    is_fraudulent = raw.get("isFraudulent")
    if not isinstance(is_fraudulent, bool):
        raise ValueError("isFraudulent must be boolean")

    score_raw = raw.get("confidenceScore")
    if isinstance(score_raw, bool):
        raise ValueError("confidenceScore must be number")
    try:
        score = float(score_raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"confidenceScore must be number: {exc}") from exc
    if score != score:
        raise ValueError("confidenceScore must not be NaN")
    # Some models answer on a 0-100 scale.
    if 1.0 < score <= 100.0:
        score = score / 100.0
    score = max(0.0, min(1.0, score))

    explanation = str(raw.get("explanation") or "").strip()
    if not explanation:
        raise ValueError("explanation is required")

    result: AnalysisResult = {
        "isFraudulent": is_fraudulent,
        "confidenceScore": score,
        "explanation": explanation,
    }
    if with_threats:
        threats_raw = raw.get("threatTypes", [])
        if not isinstance(threats_raw, list):
            raise ValueError("threatTypes must be an array")
        threats = [str(t).strip() for t in threats_raw if str(t).strip()]
        result["threatTypes"] = threats[:MAX_THREAT_TYPES]
    return result


class AnalysisService:
    def __init__(self, executor: FallbackExecutor, invoke: Invoke) -> None:
        self.executor = executor
        self.invoke = invoke

    async def analyze_text(self, payload: Any) -> ServiceResponse:
        return await self._analyze("text", payload, validate_text(payload))

    async def analyze_image(self, payload: Any) -> ServiceResponse:
        return await self._analyze("image", payload, validate_image(payload))

    async def analyze_url(self, payload: Any) -> ServiceResponse:
        return await self._analyze("url", payload, validate_url(payload))

    async def _analyze(self, kind: str, payload: Any, validation: ValidationOutcome) -> ServiceResponse:
        t0 = time.perf_counter()
        request_id = str(uuid4())
        LOGGER.info(
            "Detection request received: kind=%s request_id=%s",
            kind,
            request_id,
            extra={"kind": kind, "request_id": request_id, "event": "request_received"},
        )

        if not validation.ok:
            LOGGER.info(
                "Validation failed: kind=%s request_id=%s issues=%s",
                kind,
                request_id,
                json.dumps(validation.issues),
                extra={"kind": kind, "request_id": request_id, "event": "validation_failed"},
            )
            invalid: ValidationErrorResponse = {"error": ERROR_INVALID_REQUEST, "details": list(validation.issues)}
            return 400, dict(invalid)
        LOGGER.debug(
            "Validation passed: kind=%s request_id=%s",
            kind,
            request_id,
            extra={"kind": kind, "request_id": request_id, "event": "validation_passed"},
        )

        provider_input, schema = build_provider_input(validation.request)
        with_threats = kind in {"image", "url"}

        async def call(model: str) -> AnalysisResult:
            raw = await self.invoke(model, provider_input, schema)
            return normalize_result(raw, with_threats=with_threats)

        try:
            execution = await self.executor.run(call)
        except ProviderCallError as exc:
            meta = provider_error_meta(exc)
            latency_ms = int(round((time.perf_counter() - t0) * 1000.0))
            LOGGER.error(
                "Provider call failed: kind=%s request_id=%s model=%s attempts=%d retryable=%s code=%s",
                kind,
                request_id,
                exc.model,
                exc.attempts,
                exc.retryable,
                meta["code"],
                extra={
                    "kind": kind,
                    "request_id": request_id,
                    "event": "provider_failed",
                    "model": exc.model,
                    "attempts": exc.attempts,
                    "http_status": meta["http_status"],
                    "latency_ms": latency_ms,
                },
            )
            failure: ProviderErrorResponse = {
                "error": PROVIDER_FAILURE_ERRORS[kind],
                "message": meta["message"],
                "code": meta["code"],
                "retryable": bool(exc.retryable),
            }
            return 500, dict(failure)

        latency_ms = int(round((time.perf_counter() - t0) * 1000.0))
        LOGGER.info(
            "Provider call succeeded: kind=%s request_id=%s model=%s attempts=%d latency_ms=%d",
            kind,
            request_id,
            execution.model,
            len(execution.attempts),
            latency_ms,
            extra={
                "kind": kind,
                "request_id": request_id,
                "event": "provider_succeeded",
                "model": execution.model,
                "attempts": len(execution.attempts),
                "latency_ms": latency_ms,
            },
        )
        return 200, dict(execution.output)
