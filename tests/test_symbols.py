"""Unit tests for @symbol substitution."""

import pytest

from rollexpr.errors import UnknownSymbol
from rollexpr.symbols import SymbolTable, format_value


class TestFormatValue:
    def test_integral_float(self) -> None:
        assert format_value(3.0) == "3"

    def test_negative_number_is_parenthesized(self) -> None:
        assert format_value(-2) == "(-2)"

    def test_list_is_brace_form(self) -> None:
        assert format_value([1, 2, 3]) == "{1,2,3}"

    def test_bool(self) -> None:
        assert format_value(True) == "true"


class TestSymbolTable:
    def test_nested_lookup(self) -> None:
        table = SymbolTable({"abilities": {"str": {"mod": 3}}})
        assert table.lookup("abilities.str.mod") == 3

    def test_nested_symbol_table(self) -> None:
        table = SymbolTable({"inner": SymbolTable({"x": 4})})
        assert table.lookup("inner.x") == 4

    def test_list_index(self) -> None:
        table = SymbolTable({"dice": [4, 6, 8]})
        assert table.lookup("dice.1") == 6

    def test_missing_key(self) -> None:
        with pytest.raises(UnknownSymbol) as exc_info:
            SymbolTable({"a": {}}).lookup("a.b")
        assert exc_info.value.path == "a.b"

    def test_mapping_is_not_a_value(self) -> None:
        with pytest.raises(UnknownSymbol):
            SymbolTable({"a": {"b": 1}}).lookup("a")

    def test_contains(self) -> None:
        table = SymbolTable({"bonus": 2})
        assert "bonus" in table
        assert "malus" not in table

    def test_substitute(self) -> None:
        table = SymbolTable({"bonus": 2, "pool": [1, 2]})
        assert table.substitute("1d20 + @bonus") == "1d20 + 2"
        assert table.substitute("@pool") == "{1,2}"

    def test_substitute_missing(self) -> None:
        with pytest.raises(UnknownSymbol):
            SymbolTable().substitute("@missing")
