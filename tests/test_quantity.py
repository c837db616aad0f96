"""
tests/test_quantity.py
──────────────────────
Test suite for api_operator/shared/quantity.py

Group 1: parsing        — suffixes, numbers, rejects
Group 2: arithmetic     — reservations subtract exactly, rendering stays compact
Group 3: pydantic       — Quantity as a model field
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from api_operator.shared.models import Compute
from api_operator.shared.quantity import Quantity


# ─────────────────────────────────────────────────────────────────────────────
# Group 1: parsing
# ─────────────────────────────────────────────────────────────────────────────

class TestParse:
    @pytest.mark.parametrize("raw,expected", [
        ("200m", Decimal("0.2")),
        ("2", Decimal("2")),
        ("1.5", Decimal("1.5")),
        ("1Ki", Decimal("1024")),
        ("2Gi", Decimal(2 * 2 ** 30)),
        ("1k", Decimal("1000")),
    ])
    def test_suffixes(self, raw, expected):
        assert Quantity.parse(raw).value == expected

    def test_numbers_are_accepted(self):
        assert Quantity.parse(1).value == Decimal("1")
        assert Quantity.parse(0.5).value == Decimal("0.5")

    def test_original_text_is_kept(self):
        assert str(Quantity.parse("1500Mi")) == "1500Mi"

    @pytest.mark.parametrize("raw", ["", "   ", "abc", "1.2.3", True, "NaN", "Infinity"])
    def test_rejects(self, raw):
        with pytest.raises(ValueError):
            Quantity.parse(raw)

    def test_parse_is_idempotent_on_quantities(self):
        q = Quantity.parse("3")
        assert Quantity.parse(q) is q


# ─────────────────────────────────────────────────────────────────────────────
# Group 2: arithmetic and rendering
# ─────────────────────────────────────────────────────────────────────────────

class TestArithmetic:
    def test_cpu_reservation_renders_as_millis(self):
        assert str(Quantity.parse("4") - Quantity.parse("800m")) == "3200m"

    def test_memory_reservation_renders_with_binary_suffix(self):
        assert str(Quantity.parse("16Gi") - Quantity.parse("1500Mi")) == "14884Mi"

    def test_integral_result_without_suffix(self):
        assert str(Quantity.parse("3") - Quantity.parse("1")) == "2"

    def test_ordering_across_units(self):
        assert Quantity.parse("1500m") > Quantity.parse("1")
        assert Quantity.parse("1Gi") == Quantity.parse("1024Mi")
        assert Quantity.parse("200m") <= Quantity.parse("0.2")

    def test_addition(self):
        assert Quantity.parse("100m") + Quantity.parse("900m") == Quantity.parse("1")


# ─────────────────────────────────────────────────────────────────────────────
# Group 3: pydantic integration
# ─────────────────────────────────────────────────────────────────────────────

class TestPydantic:
    def test_string_is_parsed_into_a_quantity(self):
        compute = Compute(cpu="500m", mem="1Gi")
        assert compute.cpu == Quantity.parse("0.5")
        assert compute.mem == Quantity.parse("1024Mi")

    def test_serialises_back_to_text(self):
        dumped = Compute(cpu="500m").model_dump()
        assert dumped["cpu"] == "500m"
