"""Sanitization of free-text claim fields at intake."""

import re
from typing import Any

# Maximum lengths for text fields (characters)
MAX_LOSS_DESCRIPTION = 5000
MAX_POLICE_NARRATIVE = 5000
MAX_NAME = 128
MAX_POLICY_NUMBER = 64
MAX_VIN = 32
MAX_SHORT_TEXT = 256

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

_TOP_LEVEL_LIMITS = {
    "loss_description": MAX_LOSS_DESCRIPTION,
    "police_report_narrative": MAX_POLICE_NARRATIVE,
    "claimant_name": MAX_NAME,
    "attorney_name": MAX_NAME,
    "repair_shop": MAX_NAME,
    "policy_number": MAX_POLICY_NUMBER,
    "police_report_number": MAX_SHORT_TEXT,
}


def sanitize_text(text: Any, max_length: int) -> Any:
    """Strip control characters and surrounding whitespace, then truncate.

    Non-string values pass through unchanged; pydantic validates their types.
    """
    if not isinstance(text, str):
        return text
    cleaned = _CONTROL_CHARS.sub("", text).strip()
    return cleaned[:max_length]


def _sanitize_names(items: Any, key: str) -> Any:
    if not isinstance(items, list):
        return items
    out = []
    for item in items:
        if isinstance(item, dict) and key in item:
            item = {**item, key: sanitize_text(item[key], MAX_NAME)}
        out.append(item)
    return out


def sanitize_claim_data(claim_data: dict[str, Any]) -> dict[str, Any]:
    """
    Sanitize a raw claim submission before it is validated.

    - Strips control characters and truncates free-text fields
    - Upper-cases and trims the VIN
    - Cleans participant and provider names
    - Leaves numeric, date and nested structured fields for pydantic

    Returns a new dict; does not mutate the input.
    """
    if not claim_data or not isinstance(claim_data, dict):
        return claim_data or {}

    out: dict[str, Any] = dict(claim_data)
    for key, limit in _TOP_LEVEL_LIMITS.items():
        if key in out:
            out[key] = sanitize_text(out[key], limit)

    vehicle = out.get("vehicle")
    if isinstance(vehicle, dict) and isinstance(vehicle.get("vin"), str):
        out["vehicle"] = {**vehicle, "vin": sanitize_text(vehicle["vin"], MAX_VIN).upper()}

    if "participants" in out:
        out["participants"] = _sanitize_names(out["participants"], "name")
    if isinstance(out.get("medical_providers"), list):
        out["medical_providers"] = [sanitize_text(p, MAX_NAME) for p in out["medical_providers"]]
    return out
