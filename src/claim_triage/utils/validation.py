"""Field-level validation helpers used at intake."""

from typing import Any, Iterable, Optional

VIN_LENGTH = 17

# ISO 3779 transliteration; I, O and Q are never valid in a VIN
_VIN_VALUES = {
    **{str(d): d for d in range(10)},
    "A": 1, "B": 2, "C": 3, "D": 4, "E": 5, "F": 6, "G": 7, "H": 8,
    "J": 1, "K": 2, "L": 3, "M": 4, "N": 5, "P": 7, "R": 9,
    "S": 2, "T": 3, "U": 4, "V": 5, "W": 6, "X": 7, "Y": 8, "Z": 9,
}
_VIN_WEIGHTS = (8, 7, 6, 5, 4, 3, 2, 10, 0, 9, 8, 7, 6, 5, 4, 3, 2)
_CHECK_DIGIT_POSITION = 8


def vin_check_digit(vin: str) -> Optional[str]:
    """Expected check digit for a 17-character VIN, or None if it has invalid characters."""
    vin = vin.upper()
    if len(vin) != VIN_LENGTH or any(ch not in _VIN_VALUES for ch in vin):
        return None
    total = sum(_VIN_VALUES[ch] * w for ch, w in zip(vin, _VIN_WEIGHTS))
    remainder = total % 11
    return "X" if remainder == 10 else str(remainder)


def vin_errors(vin: Optional[str]) -> list[str]:
    """Reasons ``vin`` is not a valid VIN; empty when it is valid."""
    if not vin or not vin.strip():
        return ["VIN is required"]
    vin = vin.strip().upper()
    if len(vin) != VIN_LENGTH:
        return [f"VIN must be {VIN_LENGTH} characters, got {len(vin)}"]
    expected = vin_check_digit(vin)
    if expected is None:
        return ["VIN contains invalid characters (I, O and Q are not allowed)"]
    if vin[_CHECK_DIGIT_POSITION] != expected:
        return [f"VIN check digit mismatch: expected {expected}, got {vin[_CHECK_DIGIT_POSITION]}"]
    return []


def is_valid_vin(vin: Optional[str]) -> bool:
    return not vin_errors(vin)


def _lookup(data: dict[str, Any], dotted: str) -> Any:
    value: Any = data
    for part in dotted.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def missing_fields(data: dict[str, Any], required: Iterable[str]) -> list[str]:
    """Dotted field paths in ``required`` that are absent or blank in ``data``."""
    missing = []
    for name in required:
        value = _lookup(data, name)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(name)
    return missing
