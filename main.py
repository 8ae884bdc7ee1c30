# Fraud detection service entrypoint (root app behind the reverse proxy).

import logging
import os

from fastapi import Request
from fastapi.responses import JSONResponse

from fraudcheck.services.detect_service import create_app
from fraudcheck.shared.settings import Settings, load_settings


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


settings = load_settings()
configure_logging(settings)

app = create_app(settings)


# Ensures that even errors are returned as JSON, not HTML
@app.exception_handler(404)
async def custom_404_handler(request: Request, __):
    return JSONResponse(
        status_code=404,
        content={"detail": "Not Found", "path": request.url.path},
    )


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Cross-Origin-Resource-Policy"] = "same-origin"
    # Tells browsers to only use HTTPS
    response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    # Detection results are per-request; proxies must not cache them
    response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate"

    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
