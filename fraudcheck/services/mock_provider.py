"""Deterministic mock provider (DETECT_PROVIDER=mock).

Pattern-based stand-in for the AI model so the service runs without an API key.
It takes the same (model, input, schema) arguments as the Gemini provider and
returns the same JSON shape.
"""

from __future__ import annotations

import base64
import binascii
import io
import ipaddress
import re
from typing import Any, Dict, List
from urllib.parse import urlsplit

from PIL import Image, UnidentifiedImageError


FRAUD_PATTERNS = [
    re.compile(r"win\s*[\$€£¥]\s*[\d,]+", re.I),
    re.compile(r"congratulations.*you.*won", re.I),
    re.compile(r"claim.*prize", re.I),
    re.compile(r"urgent.*action.*required", re.I),
    re.compile(r"click.*here.*now", re.I),
    re.compile(r"limited.*time.*offer", re.I),
    re.compile(r"act.*now", re.I),
    re.compile(r"free.*money", re.I),
    re.compile(r"nigerian.*prince", re.I),
    re.compile(r"inheritance", re.I),
    re.compile(r"lottery.*winner", re.I),
    re.compile(r"tax.*refund", re.I),
    re.compile(r"suspend.*account", re.I),
    re.compile(r"verify.*account", re.I),
    re.compile(r"secure.*your.*account", re.I),
]

CURRENCY_SYMBOLS = ("$", "€", "£", "¥")

SUSPICIOUS_TLDS = {"zip", "xyz", "top", "tk", "ml", "ga", "cf", "gq", "click", "country"}
LURE_KEYWORDS = ("login", "verify", "secure", "account", "update", "wallet", "bank", "signin")


def _score_text(text: str) -> Dict[str, Any]:
    matches = [p.pattern for p in FRAUD_PATTERNS if p.search(text)]
    score = 0.25 * len(matches)
    if any(sym in text for sym in CURRENCY_SYMBOLS):
        score += 0.1
    score = round(min(0.95, max(0.05, score)), 2)
    is_fraud = score > 0.5

    if matches:
        explanation = (
            f"Detected {len(matches)} suspicious pattern(s) commonly used in fraud/scam "
            "messages (prize claims, urgency, account verification requests)."
        )
    else:
        explanation = "Text appears normal with no obvious fraud indicators."
    return {"isFraudulent": is_fraud, "confidenceScore": score, "explanation": explanation}


def _decode_image_size(image_uri: str) -> tuple[int, int] | None:
    _, _, b64 = image_uri.partition(",")
    if not b64:
        return None
    try:
        raw = base64.b64decode(b64, validate=False)
        with Image.open(io.BytesIO(raw)) as img:
            return img.size
    except (binascii.Error, ValueError, UnidentifiedImageError, OSError):
        return None


def _score_image(image_uri: str) -> Dict[str, Any]:
    score = 0.25
    notes: List[str] = []
    size = _decode_image_size(image_uri)
    if size is None:
        score += 0.2
        notes.append("Image data could not be decoded.")
    else:
        w, h = size
        if w * h < 100 * 100:
            score += 0.2
            notes.append("Small image size may indicate low-quality content.")
        elif w * h > 1000 * 1000:
            score -= 0.15
            notes.append("High-resolution image suggests legitimate content.")

    score = round(min(0.85, max(0.05, score)), 2)
    notes.append("No obvious fraud indicators detected in image structure.")
    return {
        "isFraudulent": score > 0.5,
        "confidenceScore": score,
        "explanation": " ".join(notes),
        "threatTypes": [],
    }


def _score_url(url: str) -> Dict[str, Any]:
    parts = urlsplit(url)
    host = (parts.hostname or "").lower()
    threats: List[str] = []

    try:
        ipaddress.ip_address(host)
        threats.append("Raw IP Address")
    except ValueError:
        pass
    if "@" in parts.netloc:
        threats.append("Credential Obfuscation")
    if host.startswith("xn--") or ".xn--" in host:
        threats.append("Punycode Lookalike Domain")
    if host.rsplit(".", 1)[-1] in SUSPICIOUS_TLDS:
        threats.append("Suspicious Top-Level Domain")
    if any(k in url.lower() for k in LURE_KEYWORDS) and parts.scheme != "https":
        threats.append("Phishing Page")

    score = round(min(0.95, 0.1 + 0.25 * len(threats)), 2)
    if threats:
        explanation = f"URL shows {len(threats)} risk indicator(s): {', '.join(threats)}."
    else:
        explanation = "No known threat indicators were found for this URL."
    return {
        "isFraudulent": score > 0.5,
        "confidenceScore": score,
        "explanation": explanation,
        "threatTypes": threats,
    }


async def invoke(model: str, payload: Dict[str, Any], schema: Dict[str, Any]) -> Dict[str, Any]:
    kind = payload.get("kind")
    if kind == "text":
        return _score_text(str(payload.get("text", "")))
    if kind == "image":
        return _score_image(str(payload.get("imageData", "")))
    if kind == "url":
        return _score_url(str(payload.get("url", "")))
    raise ValueError(f"Unsupported analysis kind: {kind!r}")
