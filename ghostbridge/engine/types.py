"""
Ghost Bridge order enums and integer range helpers.

Raw enum bytes arrive from callers as plain integers; ``parse`` maps them to
the typed enum or raises the matching InvalidInput error.
"""

from __future__ import annotations

from enum import IntEnum

from ..exceptions import InvalidOrderDataError, InvalidTriggerConditionError

U8_MAX = (1 << 8) - 1
U16_MAX = (1 << 16) - 1
U64_MAX = (1 << 64) - 1
I64_MIN = -(1 << 63)
I64_MAX = (1 << 63) - 1


class TriggerCondition(IntEnum):
    """Price must reach the trigger from below (ABOVE) or from above (BELOW)."""
    ABOVE = 0
    BELOW = 1

    @classmethod
    def parse(cls, raw: int) -> "TriggerCondition":
        try:
            return cls(raw)
        except ValueError:
            raise InvalidTriggerConditionError(f"raw value {raw!r}") from None


class OrderSide(IntEnum):
    LONG = 0
    SHORT = 1

    @classmethod
    def parse(cls, raw: int) -> "OrderSide":
        try:
            return cls(raw)
        except ValueError:
            raise InvalidOrderDataError(f"order side {raw!r}") from None


class OrderType(IntEnum):
    """Venue order types; the engine only emits MARKET."""
    MARKET = 0
    LIMIT = 1
    TRIGGER_MARKET = 2
    TRIGGER_LIMIT = 3
    ORACLE = 4


class MarketType(IntEnum):
    SPOT = 0
    PERP = 1


def check_unsigned(name: str, value: int, maximum: int) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= maximum:
        raise InvalidOrderDataError(f"{name} out of range: {value!r}")
    return value


def check_signed(name: str, value: int) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or not I64_MIN <= value <= I64_MAX:
        raise InvalidOrderDataError(f"{name} out of range: {value!r}")
    return value


def check_fixed_bytes(name: str, value: bytes, length: int) -> bytes:
    if not isinstance(value, (bytes, bytearray)) or len(value) != length:
        raise InvalidOrderDataError(f"{name} must be {length} bytes")
    return bytes(value)
