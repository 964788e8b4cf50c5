"""Turn free-form model text into a validated diagnostic payload.

The model is asked for bare JSON but regularly wraps it in code fences, drifts
on enum spelling or reports confidence outside 0..100. ``parse_model_output``
absorbs the harmless variants and rejects anything that cannot become a
complete record. It never raises for bad input; callers get either a
:class:`DiagnosticPayload` or a :class:`ParseFailure`.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from typing import Any

from cropscan.models import CropStatus, Severity

REQUIRED_KEYS = (
    "disease",
    "confidence",
    "severity",
    "crop",
    "status",
    "treatment",
    "prevention",
)

STATUS_MAP = {
    "HEALTHY": CropStatus.HEALTHY,
    "DISEASED": CropStatus.DISEASED,
    "AT_RISK": CropStatus.AT_RISK,
    "UNKNOWN": CropStatus.UNKNOWN,
}

_LEADING_FENCE = re.compile(r"^```[A-Za-z0-9_-]*[ \t]*\r?\n?")
_TRAILING_FENCE = re.compile(r"\r?\n?[ \t]*```$")


@dataclass(frozen=True)
class DiagnosticPayload:
    disease: str
    confidence: int
    severity: Severity
    crop: str
    status: CropStatus
    treatment: str
    prevention: str


@dataclass(frozen=True)
class ParseFailure:
    reason: str
    raw: str


def strip_code_fences(raw: str) -> str:
    text = raw.strip()
    text = _LEADING_FENCE.sub("", text, count=1)
    text = _TRAILING_FENCE.sub("", text, count=1)
    return text.strip()


def clamp_confidence(value: Any) -> int | None:
    """Round to int and clamp into 0..100; ``None`` if not numeric."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip().rstrip("%"))
        except ValueError:
            return None
    if not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return max(0, min(100, int(round(value))))


def map_status(value: Any) -> CropStatus:
    key = str(value or "").strip().upper().replace(" ", "_").replace("-", "_")
    return STATUS_MAP.get(key, CropStatus.UNKNOWN)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def parse_model_output(raw: str | None) -> DiagnosticPayload | ParseFailure:
    raw = raw or ""
    cleaned = strip_code_fences(raw)
    try:
        data = json.loads(cleaned)
    except (json.JSONDecodeError, ValueError):
        return ParseFailure("Model output is not valid JSON", raw)
    if not isinstance(data, dict):
        return ParseFailure("Model output is not a JSON object", raw)

    missing = [key for key in REQUIRED_KEYS if key not in data]
    if missing:
        return ParseFailure(f"Missing keys: {', '.join(missing)}", raw)

    disease = _text(data["disease"])
    if not disease:
        return ParseFailure("Empty disease label", raw)

    confidence = clamp_confidence(data["confidence"])
    if confidence is None:
        return ParseFailure("Confidence is not a number", raw)

    severity_key = _text(data["severity"]).upper()
    try:
        severity = Severity(severity_key)
    except ValueError:
        return ParseFailure(f"Unknown severity: {data['severity']!r}", raw)

    return DiagnosticPayload(
        disease=disease,
        confidence=confidence,
        severity=severity,
        crop=_text(data["crop"]),
        status=map_status(data["status"]),
        treatment=_text(data["treatment"]),
        prevention=_text(data["prevention"]),
    )


__all__ = [
    "DiagnosticPayload",
    "ParseFailure",
    "REQUIRED_KEYS",
    "clamp_confidence",
    "map_status",
    "parse_model_output",
    "strip_code_fences",
]
