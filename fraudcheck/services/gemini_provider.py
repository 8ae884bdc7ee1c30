"""Gemini provider call primitive (DETECT_PROVIDER=gemini).

`invoke(model, payload, schema)` performs one `generateContent` request with a
JSON response schema and returns the parsed JSON object. Failures are raised,
not handled, so the fallback executor can classify them:
  - httpx.HTTPStatusError (status in exc.response.status_code),
  - httpx.TimeoutException / httpx.RequestError,
  - ValueError for empty or malformed model output.
"""

from __future__ import annotations

import base64
import binascii
import io
import json
import os
from typing import Any, Dict, List, Tuple

import httpx
from PIL import Image, UnidentifiedImageError

from fraudcheck.shared.settings import get_gemini_api_key

API_BASE = "https://generativelanguage.googleapis.com/v1beta"


def _model_path(model: str) -> str:
    # Catalog entries may carry a "googleai/" plugin prefix.
    name = model.split("/", 1)[1] if model.startswith("googleai/") else model
    return name if name.startswith("models/") else f"models/{name}"


def _to_gemini_schema(schema: Any) -> Any:
    """Uppercase JSON-schema `type` values as Gemini's OpenAPI subset expects."""

    if isinstance(schema, dict):
        out: Dict[str, Any] = {}
        for key, value in schema.items():
            if key == "type" and isinstance(value, str):
                out[key] = value.upper()
            elif key == "properties" and isinstance(value, dict):
                out[key] = {k: _to_gemini_schema(v) for k, v in value.items()}
            else:
                out[key] = _to_gemini_schema(value)
        return out
    if isinstance(schema, list):
        return [_to_gemini_schema(v) for v in schema]
    return schema


def _split_data_uri(image_uri: str) -> Tuple[str, str]:
    header, _, data = image_uri.partition(",")
    mime = header[len("data:"):].split(";", 1)[0] or "image/jpeg"
    return mime, data


def _prepare_inline_image(image_uri: str, max_side: int = 1024) -> Dict[str, str]:
    """Downscale large images and re-encode as JPEG before upload.

    Undecodable data is passed through unchanged; the provider decides.
    """

    mime, data = _split_data_uri(image_uri)
    try:
        raw = base64.b64decode(data, validate=False)
        img = Image.open(io.BytesIO(raw))
        img.load()
    except (binascii.Error, ValueError, UnidentifiedImageError, OSError):
        return {"mime_type": mime, "data": data}

    w, h = img.size
    scale = min(1.0, float(max_side) / float(max(w, h)))
    if scale >= 1.0:
        return {"mime_type": mime, "data": data}

    img_rgb = img.convert("RGB")
    new_w = max(1, int(round(w * scale)))
    new_h = max(1, int(round(h * scale)))
    img_rgb = img_rgb.resize((new_w, new_h), resample=Image.BICUBIC)
    buf = io.BytesIO()
    img_rgb.save(buf, format="JPEG", quality=85, optimize=True)
    return {"mime_type": "image/jpeg", "data": base64.b64encode(buf.getvalue()).decode("ascii")}


def build_request_body(payload: Dict[str, Any], schema: Dict[str, Any]) -> Dict[str, Any]:
    parts: List[Dict[str, Any]] = [{"text": str(payload["prompt"])}]
    if payload.get("kind") == "image":
        parts.append({"inline_data": _prepare_inline_image(str(payload["imageData"]))})

    return {
        "contents": [{"role": "user", "parts": parts}],
        "generationConfig": {
            "temperature": 0.1,
            "maxOutputTokens": 2048,
            "responseMimeType": "application/json",
            "responseSchema": _to_gemini_schema(schema),
        },
    }


def extract_output_text(resp_json: Dict[str, Any]) -> str:
    candidates = resp_json.get("candidates", [])
    texts: List[str] = []
    if isinstance(candidates, list) and candidates:
        first = candidates[0] if isinstance(candidates[0], dict) else {}
        content = first.get("content", {}) or {}
        for part in content.get("parts", []) or []:
            if isinstance(part, dict) and "text" in part:
                texts.append(str(part["text"]))
    text = "".join(texts).strip()
    if not text:
        raise ValueError("Gemini response did not contain output text")
    return text


def strip_code_fence(raw: str) -> str:
    raw = raw.strip()
    if raw.startswith("```"):
        lines = raw.split("\n")
        raw = "\n".join(lines[1:])
        if raw.rstrip().endswith("```"):
            raw = raw.rstrip()[:-3]
        raw = raw.strip()
    return raw


async def invoke(model: str, payload: Dict[str, Any], schema: Dict[str, Any]) -> Dict[str, Any]:
    api_key = get_gemini_api_key()
    url = f"{os.getenv('GEMINI_API_BASE', API_BASE)}/{_model_path(model)}:generateContent"
    headers = {
        "x-goog-api-key": api_key,
        "Content-Type": "application/json",
    }
    body = build_request_body(payload, schema)

    # The executor bounds the whole attempt; this only guards the socket.
    async with httpx.AsyncClient(timeout=httpx.Timeout(60.0)) as client:
        resp = await client.post(url, headers=headers, json=body)
        resp.raise_for_status()
        resp_json = resp.json()

    text = extract_output_text(resp_json)
    try:
        data = json.loads(strip_code_fence(text))
    except json.JSONDecodeError as exc:
        raise ValueError(f"JSON parse error: {exc}. Raw: {text[:200]}") from exc
    if not isinstance(data, dict):
        raise ValueError("Gemini output must be a JSON object")
    return data
