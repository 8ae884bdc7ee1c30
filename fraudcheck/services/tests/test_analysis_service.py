from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest

from fraudcheck.services import analysis_service as svc
from fraudcheck.services import mock_provider
from fraudcheck.shared.fallback import FallbackExecutor
from fraudcheck.shared.model_registry import ModelRegistry

SCAM_TEXT = "Congratulations! You've won $1,000,000! Click here to claim your prize!"


def _status_error(status: int) -> httpx.HTTPStatusError:
    req = httpx.Request("POST", "https://generativelanguage.googleapis.com/v1beta/models/x:generateContent")
    resp = httpx.Response(status, request=req, text=f"status {status}")
    return httpx.HTTPStatusError("bad status", request=req, response=resp)


def _service(invoke) -> svc.AnalysisService:
    registry = ModelRegistry(["exp", "pro", "flash"], stable_index=1)
    return svc.AnalysisService(FallbackExecutor(registry, timeout_s=1.0), invoke)


class _RecordingInvoke:
    def __init__(self, *results: Any) -> None:
        self.results = list(results)
        self.calls: list[tuple[str, dict, dict]] = []

    async def __call__(self, model: str, payload: dict, schema: dict) -> Any:
        self.calls.append((model, payload, schema))
        result = self.results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result


def _good(score: float = 0.9, **extra: Any) -> dict:
    return {"isFraudulent": score > 0.5, "confidenceScore": score, "explanation": "Prize scam.", **extra}


def test_scam_text_is_flagged_by_mock_provider() -> None:
    status, body = asyncio.run(_service(mock_provider.invoke).analyze_text({"text": SCAM_TEXT}))

    assert status == 200
    assert body["isFraudulent"] is True
    assert 0.5 < body["confidenceScore"] <= 1.0
    assert body["explanation"]


def test_empty_text_returns_400_with_minimum_length() -> None:
    invoke = _RecordingInvoke()

    status, body = asyncio.run(_service(invoke).analyze_text({"text": ""}))

    assert status == 400
    assert body["error"] == "Invalid request"
    assert "at least 1" in body["details"][0]["reason"]
    assert invoke.calls == []


def test_invalid_image_returns_400() -> None:
    status, body = asyncio.run(_service(_RecordingInvoke()).analyze_image({"imageData": "not-a-data-uri"}))

    assert status == 400
    assert "not a valid image data URI" in body["details"][0]["reason"]


def test_rate_limited_text_succeeds_on_fallback_transparently() -> None:
    invoke = _RecordingInvoke(_status_error(429), _good(0.8))

    status, body = asyncio.run(_service(invoke).analyze_text({"text": SCAM_TEXT}))

    assert status == 200
    assert body == {"isFraudulent": True, "confidenceScore": 0.8, "explanation": "Prize scam."}
    assert [c[0] for c in invoke.calls] == ["pro", "flash"]


def test_double_failure_returns_500_with_secondary_message() -> None:
    invoke = _RecordingInvoke(_status_error(500), _status_error(503))

    status, body = asyncio.run(_service(invoke).analyze_text({"text": "hello"}))

    assert status == 500
    assert body["error"] == "Failed to analyze text"
    assert body["message"] == "status 503"
    assert body["retryable"] is True
    assert len(invoke.calls) == 2


def test_fatal_failure_returns_500_without_retry() -> None:
    invoke = _RecordingInvoke(_status_error(403), _good())

    status, body = asyncio.run(_service(invoke).analyze_image({"imageData": "data:image/png;base64,AAAA"}))

    assert status == 500
    assert body["error"] == "Failed to analyze image"
    assert body["retryable"] is False
    assert len(invoke.calls) == 1


def test_malformed_provider_output_is_fatal_and_never_partial() -> None:
    invoke = _RecordingInvoke({"isFraudulent": True}, _good())

    status, body = asyncio.run(_service(invoke).analyze_text({"text": "hello"}))

    assert status == 500
    assert body["code"] == "schema"
    assert "isFraudulent" not in body
    assert len(invoke.calls) == 1


def test_image_and_url_results_carry_threat_types() -> None:
    invoke = _RecordingInvoke(_good(0.7, threatTypes=["Phishing Page", " "]))

    status, body = asyncio.run(_service(invoke).analyze_url({"url": "http://198.51.100.7/login"}))

    assert status == 200
    assert body["threatTypes"] == ["Phishing Page"]
    model, payload, schema = invoke.calls[0]
    assert payload["kind"] == "url"
    assert "http://198.51.100.7/login" in payload["prompt"]
    assert "threatTypes" in schema["required"]


def test_build_provider_input_text_includes_content() -> None:
    request = svc.validate_text({"text": "Act now!"}).request

    payload, schema = svc.build_provider_input(request)

    assert payload["kind"] == "text"
    assert "Act now!" in payload["prompt"]
    assert schema["required"] == ["isFraudulent", "confidenceScore", "explanation"]


def test_normalize_result_clamps_and_rescales_scores() -> None:
    assert svc.normalize_result(_good(1.7))["confidenceScore"] == pytest.approx(0.017)
    assert svc.normalize_result(_good(-0.2))["confidenceScore"] == 0.0
    assert svc.normalize_result(_good(250.0))["confidenceScore"] == 1.0
    assert svc.normalize_result({**_good(), "confidenceScore": "0.4"})["confidenceScore"] == 0.4


@pytest.mark.parametrize(
    "raw",
    [
        [],
        {"isFraudulent": "yes", "confidenceScore": 0.5, "explanation": "x"},
        {"isFraudulent": True, "confidenceScore": "high", "explanation": "x"},
        {"isFraudulent": True, "confidenceScore": True, "explanation": "x"},
        {"isFraudulent": True, "confidenceScore": float("nan"), "explanation": "x"},
        {"isFraudulent": True, "confidenceScore": 0.5, "explanation": "  "},
    ],
)
def test_normalize_result_rejects_malformed_output(raw) -> None:
    with pytest.raises(ValueError):
        svc.normalize_result(raw)


def test_normalize_result_requires_list_threat_types() -> None:
    with pytest.raises(ValueError, match="threatTypes"):
        svc.normalize_result(_good(threatTypes="Phishing"), with_threats=True)

    assert svc.normalize_result(_good(), with_threats=True)["threatTypes"] == []


def test_concurrent_requests_do_not_move_shared_cursor() -> None:
    registry = ModelRegistry(["exp", "pro", "flash"], stable_index=1)

    async def flaky(model: str, payload: dict, schema: dict) -> dict:
        await asyncio.sleep(0)
        if model == "pro":
            raise _status_error(429)
        return _good()

    service = svc.AnalysisService(FallbackExecutor(registry, timeout_s=1.0), flaky)

    async def _many():
        return await asyncio.gather(*(service.analyze_text({"text": f"msg {i}"}) for i in range(20)))

    results = asyncio.run(_many())

    assert all(status == 200 for status, _ in results)
    assert registry.current() == "pro"
