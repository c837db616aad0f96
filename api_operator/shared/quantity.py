"""
api_operator/shared/quantity.py
───────────────────────────────
Quantity: a Kubernetes resource quantity ("200m", "1.5", "2Gi") as a value.

Parsing is delegated to kubernetes.utils.parse_quantity, which returns the
exact Decimal value in base units (cores, bytes). The original text is kept
so error messages echo what the user wrote; quantities produced by arithmetic
are rendered in the most compact exact form (binary suffix, millis, or plain).
"""

from __future__ import annotations

from decimal import Decimal
from functools import total_ordering
from typing import Any, Optional, Union

from kubernetes.utils import parse_quantity
from pydantic_core import core_schema

_BINARY_SUFFIXES = (("Ei", 2 ** 60), ("Pi", 2 ** 50), ("Ti", 2 ** 40), ("Gi", 2 ** 30), ("Mi", 2 ** 20), ("Ki", 2 ** 10))


@total_ordering
class Quantity:
    """Immutable resource quantity with exact decimal arithmetic."""

    __slots__ = ("_value", "_text")

    def __init__(self, value: Union[Decimal, int], text: Optional[str] = None) -> None:
        self._value = Decimal(value)
        self._text = text

    @classmethod
    def parse(cls, raw: Union[str, int, float, "Quantity"]) -> "Quantity":
        """
        Parse a quantity string (or number).

        Raises:
            ValueError: if the input is not a valid Kubernetes quantity.
        """
        if isinstance(raw, Quantity):
            return raw
        if isinstance(raw, bool):
            raise ValueError(f"{raw!r} is not a valid quantity")
        text = str(raw).strip()
        if not text:
            raise ValueError("quantity must not be empty")
        value = parse_quantity(text)
        if not value.is_finite():
            raise ValueError(f"{text!r} is not a finite quantity")
        return cls(value, text)

    @property
    def value(self) -> Decimal:
        return self._value

    def __sub__(self, other: "Quantity") -> "Quantity":
        return Quantity(self._value - other._value)

    def __add__(self, other: "Quantity") -> "Quantity":
        return Quantity(self._value + other._value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Quantity):
            return NotImplemented
        return self._value == other._value

    def __lt__(self, other: "Quantity") -> bool:
        if not isinstance(other, Quantity):
            return NotImplemented
        return self._value < other._value

    def __hash__(self) -> int:
        return hash(self._value)

    def __str__(self) -> str:
        if self._text is not None:
            return self._text
        return _render(self._value)

    def __repr__(self) -> str:
        return f"Quantity({str(self)!r})"

    # ── pydantic integration ─────────────────────────────────────────────────

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls.parse,
            serialization=core_schema.plain_serializer_function_ser_schema(str),
        )


def _render(value: Decimal) -> str:
    if value == value.to_integral_value():
        as_int = int(value)
        for suffix, factor in _BINARY_SUFFIXES:
            if as_int != 0 and as_int % factor == 0:
                return f"{as_int // factor}{suffix}"
        return str(as_int)
    millis = value * 1000
    if millis == millis.to_integral_value():
        return f"{int(millis)}m"
    return format(value.normalize(), "f")
