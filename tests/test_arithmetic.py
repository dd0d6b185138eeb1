"""Unit tests for the flattened arithmetic evaluator."""

import pytest

from rollexpr.arithmetic import safe_eval
from rollexpr.errors import DivideByZero, ParseError


class TestSafeEval:
    def test_precedence(self) -> None:
        assert safe_eval("2 + 3 * 4") == 14

    def test_left_associative(self) -> None:
        assert safe_eval("10 - 4 - 3") == 3
        assert safe_eval("64 / 4 / 2") == 8

    def test_parentheses(self) -> None:
        assert safe_eval("(2 + 3) * 4") == 20

    def test_exact_division_stays_integer(self) -> None:
        result = safe_eval("12 / 4")
        assert result == 3
        assert isinstance(result, int)

    def test_inexact_division_is_float(self) -> None:
        assert safe_eval("7 / 2") == 3.5

    def test_float_inputs(self) -> None:
        assert safe_eval("1.5 + 1") == 2.5

    def test_unary_minus(self) -> None:
        assert safe_eval("3 - -2") == 5
        assert safe_eval("-4 * 2") == -8

    def test_remainder_takes_sign_of_dividend(self) -> None:
        assert safe_eval("7 % 3") == 1
        assert safe_eval("-7 % 3") == -1
        assert safe_eval("7 % -3") == 1

    def test_divide_by_zero(self) -> None:
        with pytest.raises(DivideByZero):
            safe_eval("1 / 0")

    def test_remainder_by_zero(self) -> None:
        with pytest.raises(DivideByZero):
            safe_eval("5 % 0")

    def test_rejects_names(self) -> None:
        with pytest.raises(ParseError):
            safe_eval("__import__('os')")

    def test_rejects_dangling_operator(self) -> None:
        with pytest.raises(ParseError):
            safe_eval("1 +")
