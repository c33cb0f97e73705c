"""Tests for error classification and the variant registry."""

import pytest

from faultline.core.exceptions import (
    ArgumentException,
    EvalException,
    ManagedException,
    RangeException,
    ReferenceException,
    SyntaxException,
    TypeException,
    URIException,
)
from faultline.core.registry import ErrorKind, VariantRegistry, VariantSpec, classify_error, variant_registry


class TestClassifyError:
    """Python errors map onto a closed set of kinds."""

    @pytest.mark.parametrize(
        "error, kind",
        [
            (UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte"), ErrorKind.URI),
            (SyntaxError("invalid syntax"), ErrorKind.SYNTAX),
            (IndentationError("unexpected indent"), ErrorKind.SYNTAX),
            (TypeError("unsupported operand"), ErrorKind.TYPE),
            (AttributeError("no attribute"), ErrorKind.TYPE),
            (NameError("undefined"), ErrorKind.REFERENCE),
            (KeyError("missing"), ErrorKind.REFERENCE),
            (IndexError("out of range"), ErrorKind.REFERENCE),
            (ValueError("bad value"), ErrorKind.RANGE),
            (OverflowError("too large"), ErrorKind.RANGE),
            (RecursionError("too deep"), ErrorKind.RANGE),
            (ZeroDivisionError("division by zero"), ErrorKind.EVAL),
            (RuntimeError("generic"), ErrorKind.GENERIC),
            (OSError(2, "No such file"), ErrorKind.GENERIC),
        ],
    )
    def test_errors(self, error, kind):
        """Test the classification table, most specific kinds first."""
        assert classify_error(error) is kind

    @pytest.mark.parametrize("value", ["a string", 42, None, {"code": 7}])
    def test_non_errors_are_generic(self, value):
        """Test that anything that is not an error is GENERIC."""
        assert classify_error(value) is ErrorKind.GENERIC


class TestVariantRegistry:
    """Tag and kind lookups."""

    def test_builtin_variants_registered_by_tag(self):
        """Test that every built-in variant is reachable by its tag."""
        for variant in (ArgumentException, TypeException, URIException, SyntaxException):
            assert variant.tag in variant_registry
            assert variant_registry.get(variant.tag).variant is variant

    def test_builtin_kinds(self):
        """Test which variant handles each error kind."""
        assert variant_registry.for_kind(ErrorKind.GENERIC).variant is ManagedException
        assert variant_registry.for_kind(ErrorKind.RANGE).variant is RangeException
        assert variant_registry.for_kind(ErrorKind.REFERENCE).variant is ReferenceException
        assert variant_registry.for_kind(ErrorKind.EVAL).variant is EvalException

    def test_register_without_kind(self):
        """Test that specs without a kind are only reachable by tag."""
        registry = VariantRegistry()
        registry.register(VariantSpec("ArgumentException", ArgumentException, Exception))

        assert len(registry) == 1
        assert registry.for_kind(ErrorKind.GENERIC) is None
        assert [spec.tag for spec in registry] == ["ArgumentException"]

    def test_later_registration_wins(self):
        """Test that re-registering a kind replaces the previous variant."""
        registry = VariantRegistry()
        registry.register(VariantSpec("RangeException", RangeException, ValueError, ErrorKind.RANGE))
        registry.register(VariantSpec("EvalException", EvalException, ArithmeticError, ErrorKind.RANGE))

        assert registry.for_kind(ErrorKind.RANGE).variant is EvalException
        assert registry.get("missing") is None
