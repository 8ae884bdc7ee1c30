"""Primary/fallback execution policy for a single provider call.

One logical request makes at most two provider calls:
  - primary model (registry cursor),
  - one fallback model, only when the primary failure is retryable
    (HTTP 429, any 5xx, or a timeout on the primary attempt).

Each attempt is turned into an `AttemptOutcome` value, and the next step is
decided by `plan_next_step()` over that value.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional

import httpx

from fraudcheck.shared.model_registry import ModelRegistry

LOGGER = logging.getLogger(__name__)

AttemptStatus = Literal["success", "retryable", "fatal"]
NextStep = Literal["return", "fallback", "raise"]

ProviderCall = Callable[[str], Awaitable[Any]]

TIMEOUT_ERRORS = (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException)


@dataclass(frozen=True)
class AttemptOutcome:
    """Result of one provider call: a success value or a classified failure."""

    model: str
    status: AttemptStatus
    output: Any = None
    error: Optional[BaseException] = None
    http_status: Optional[int] = None
    timed_out: bool = False
    latency_ms: int = 0


@dataclass
class ExecutionResult:
    output: Any
    model: str
    attempts: List[AttemptOutcome] = field(default_factory=list)

    @property
    def used_fallback(self) -> bool:
        return len(self.attempts) > 1


class ProviderCallError(RuntimeError):
    """Raised by the executor once the attempt budget is exhausted."""

    def __init__(
        self,
        message: str,
        *,
        model: str,
        http_status: Optional[int] = None,
        retryable: bool = False,
        timed_out: bool = False,
        attempts: int = 1,
    ) -> None:
        super().__init__(message)
        self.model = model
        self.http_status = http_status
        self.retryable = retryable
        self.timed_out = timed_out
        self.attempts = attempts


def error_status(exc: BaseException) -> Optional[int]:
    """HTTP-like status of a provider failure, if it came from the remote side."""

    if isinstance(exc, httpx.HTTPStatusError):
        return int(exc.response.status_code)
    for candidate in (exc, exc.__cause__):
        status = getattr(candidate, "status", None)
        if isinstance(status, int):
            return status
    return None


def is_retryable_status(status: Optional[int]) -> bool:
    return status is not None and (status == 429 or 500 <= status <= 599)


def classify_failure(
    model: str,
    exc: BaseException,
    *,
    is_fallback: bool,
    latency_ms: int = 0,
) -> AttemptOutcome:
    if isinstance(exc, TIMEOUT_ERRORS):
        return AttemptOutcome(
            model=model,
            status="fatal" if is_fallback else "retryable",
            error=exc,
            timed_out=True,
            latency_ms=latency_ms,
        )

    status = error_status(exc)
    return AttemptOutcome(
        model=model,
        status="retryable" if is_retryable_status(status) else "fatal",
        error=exc,
        http_status=status,
        latency_ms=latency_ms,
    )


def plan_next_step(outcome: AttemptOutcome, attempt_number: int) -> NextStep:
    if outcome.status == "success":
        return "return"
    if outcome.status == "retryable" and attempt_number == 1:
        return "fallback"
    return "raise"


class FallbackExecutor:
    """Runs a provider call against the primary model with one fallback hop."""

    def __init__(self, registry: ModelRegistry, *, timeout_s: float = 20.0) -> None:
        self.registry = registry
        self.timeout_s = float(timeout_s)

    async def _attempt(self, call: ProviderCall, model: str, *, is_fallback: bool) -> AttemptOutcome:
        t0 = time.perf_counter()
        try:
            output = await asyncio.wait_for(call(model), timeout=self.timeout_s)
        except Exception as exc:  # noqa: BLE001 - classified below
            latency_ms = int(round((time.perf_counter() - t0) * 1000.0))
            return classify_failure(model, exc, is_fallback=is_fallback, latency_ms=latency_ms)
        latency_ms = int(round((time.perf_counter() - t0) * 1000.0))
        return AttemptOutcome(model=model, status="success", output=output, latency_ms=latency_ms)

    async def run(self, call: ProviderCall) -> ExecutionResult:
        attempts: List[AttemptOutcome] = []

        primary = self.registry.current()
        outcome = await self._attempt(call, primary, is_fallback=False)
        attempts.append(outcome)
        step = plan_next_step(outcome, len(attempts))

        if step == "fallback":
            secondary = self.registry.fallback()
            LOGGER.warning(
                "Model %s failed (status=%s, timeout=%s); falling back to %s",
                primary,
                outcome.http_status,
                outcome.timed_out,
                secondary,
                extra={"model": primary, "fallback_model": secondary},
            )
            outcome = await self._attempt(call, secondary, is_fallback=True)
            attempts.append(outcome)
            step = plan_next_step(outcome, len(attempts))

        if step == "return":
            return ExecutionResult(output=outcome.output, model=outcome.model, attempts=attempts)

        assert outcome.error is not None
        raise ProviderCallError(
            f"Provider call failed on {outcome.model}: {outcome.error}",
            model=outcome.model,
            http_status=outcome.http_status,
            retryable=outcome.status == "retryable",
            timed_out=outcome.timed_out,
            attempts=len(attempts),
        ) from outcome.error

    async def execute(self, call: ProviderCall) -> Any:
        result = await self.run(call)
        return result.output


def _extract_error_json(resp: httpx.Response) -> Dict[str, Any]:
    try:
        payload = resp.json()
    except Exception:  # noqa: BLE001 - best effort only
        return {}
    return payload if isinstance(payload, dict) else {}


def provider_error_meta(exc: BaseException) -> Dict[str, str]:
    """Return compact, non-secret error info for 500 responses and logs.

    Contract:
      {"http_status": "...", "code": "...", "message": "..."}
    """

    root = exc
    if isinstance(exc, ProviderCallError) and exc.__cause__ is not None:
        root = exc.__cause__

    msg_l = str(root).lower()
    if isinstance(root, RuntimeError) and "missing gemini_api_key" in msg_l:
        return {"http_status": "", "code": "missing_api_key", "message": "Missing GEMINI_API_KEY"}
    if isinstance(root, TIMEOUT_ERRORS):
        return {"http_status": "", "code": "timeout", "message": "Provider request timed out"}

    if isinstance(root, httpx.HTTPStatusError):
        status = int(root.response.status_code)
        payload = _extract_error_json(root.response)
        err = payload.get("error", {})
        if not isinstance(err, dict):
            err = {}
        err_status = str(err.get("status", "")).strip()
        err_msg = str(err.get("message", "")).strip()

        code = err_status.lower() if err_status else f"http_{status}"
        if err_msg:
            message = err_msg
        else:
            # Non-JSON bodies (proxies returning HTML). Never include secrets.
            snippet = (root.response.text or "").strip().replace("\n", " ")
            message = snippet[:200] if snippet else "Provider request failed"
        return {"http_status": str(status), "code": code, "message": message}

    status = error_status(root)
    if status is not None:
        return {"http_status": str(status), "code": f"http_{status}", "message": str(root)[:200]}
    if isinstance(root, httpx.RequestError):
        return {"http_status": "", "code": "network", "message": root.__class__.__name__}
    if isinstance(root, ValueError):
        msg = str(root).strip() or root.__class__.__name__
        return {"http_status": "", "code": "schema", "message": msg[:200]}

    return {"http_status": "", "code": "unknown", "message": root.__class__.__name__}
