"""Fraud Detection Service.

FastAPI app exposing the detection endpoints used by the web UI and the
browser extension:
- POST /api/text-detect   {"text": "..."}           (1-10000 chars)
- POST /api/image-detect  {"imageData": "data:image/...;base64,..."}
- POST /api/url-detect    {"url": "https://..."}
- POST /api/report        {"type": "text|image|url", "content": "..."}
- GET on the detect paths returns 405 {"error": "Method not allowed. Use POST."}

Model administration (shared cursor, explicit operator actions only):
- GET  /api/models
- POST /api/models/rotate
- POST /api/models/reset

Provider is `mock` or `gemini` (env: `DETECT_PROVIDER`).

Run (from repo root):
  uvicorn main:app --host 0.0.0.0 --port 8000
  uvicorn fraudcheck.services.detect_service:create_app --factory --port 8000

Quick curl:
  curl -X POST http://127.0.0.1:8000/api/text-detect \
    -H "Content-Type: application/json" -d '{"text": "Claim your prize now!"}'
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from fraudcheck.services import gemini_provider, mock_provider
from fraudcheck.services.analysis_service import AnalysisService, Invoke
from fraudcheck.services.reporting import ReportingSink
from fraudcheck.shared.detect_contract import (
    ERROR_INVALID_JSON,
    ERROR_INVALID_REQUEST,
    ERROR_METHOD_NOT_ALLOWED,
)
from fraudcheck.shared.fallback import FallbackExecutor
from fraudcheck.shared.model_registry import ModelRegistry
from fraudcheck.shared.request_validation import validate_report
from fraudcheck.shared.settings import Settings, load_settings

LOGGER = logging.getLogger(__name__)

SERVICE_VERSION = "1.0"

PROVIDERS: Dict[str, Invoke] = {
    "mock": mock_provider.invoke,
    "gemini": gemini_provider.invoke,
}


def _error(error: str, status_code: int, **fields: Any) -> JSONResponse:
    payload: Dict[str, Any] = {"error": error}
    payload.update(fields)
    return JSONResponse(status_code=status_code, content=payload)


def _method_not_allowed() -> JSONResponse:
    return JSONResponse(
        status_code=405,
        content={"error": ERROR_METHOD_NOT_ALLOWED},
        headers={"Allow": "POST"},
    )


async def _read_json(request: Request) -> tuple[Any, Optional[JSONResponse]]:
    raw = await request.body()
    try:
        return json.loads(raw or b"null"), None
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        return None, _error(
            ERROR_INVALID_REQUEST,
            status_code=400,
            details=[{"field": "body", "reason": f"{ERROR_INVALID_JSON}: {exc}"}],
        )


def create_app(
    settings: Optional[Settings] = None,
    *,
    invoke: Optional[Invoke] = None,
    registry: Optional[ModelRegistry] = None,
) -> FastAPI:
    settings = settings or load_settings()
    registry = registry or ModelRegistry(
        settings.models,
        stable_index=settings.stable_index,
        fallback_model=settings.fallback_model,
    )
    executor = FallbackExecutor(registry, timeout_s=settings.timeout_s)
    service = AnalysisService(executor, invoke or PROVIDERS[settings.provider])
    sink = ReportingSink(settings.report_log_path)

    app = FastAPI(title="Fraud Detection Service", version=SERVICE_VERSION)
    app.state.settings = settings
    app.state.registry = registry
    app.state.analysis = service
    app.state.reporting = sink

    LOGGER.info(
        "Detection service ready: provider=%s model=%s",
        settings.provider,
        registry.current(),
    )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        LOGGER.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error("Internal server error", status_code=500)

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok", "provider": settings.provider, "model": registry.current()}

    async def _detect(request: Request, analyze) -> JSONResponse:
        payload, err = await _read_json(request)
        if err is not None:
            return err
        status_code, body = await analyze(payload)
        return JSONResponse(status_code=status_code, content=body)

    @app.post("/api/text-detect")
    async def text_detect(request: Request) -> JSONResponse:
        return await _detect(request, service.analyze_text)

    @app.post("/api/image-detect")
    async def image_detect(request: Request) -> JSONResponse:
        return await _detect(request, service.analyze_image)

    @app.post("/api/url-detect")
    async def url_detect(request: Request) -> JSONResponse:
        return await _detect(request, service.analyze_url)

    @app.get("/api/text-detect")
    @app.get("/api/image-detect")
    @app.get("/api/url-detect")
    def detect_get() -> JSONResponse:
        return _method_not_allowed()

    @app.post("/api/report")
    async def report(request: Request) -> JSONResponse:
        payload, err = await _read_json(request)
        if err is not None:
            return err
        validation = validate_report(payload)
        if not validation.ok:
            return _error(ERROR_INVALID_REQUEST, status_code=400, details=validation.issues)
        sink.report(validation.request)
        return JSONResponse(status_code=202, content={"status": "received"})

    @app.get("/api/models")
    def models() -> Dict[str, Any]:
        return registry.snapshot()

    @app.post("/api/models/rotate")
    def rotate_model() -> Dict[str, Any]:
        model = registry.advance()
        return {"current_model": model}

    @app.post("/api/models/reset")
    def reset_model() -> Dict[str, Any]:
        model = registry.reset_to_stable()
        return {"current_model": model}

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
