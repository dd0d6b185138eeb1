"""Unit tests for the shared modifier machinery."""

import pytest

from rollexpr.errors import InvalidArgument
from rollexpr.modifiers import (
    DiceResult,
    compare_result,
    keep_or_drop,
    split_modifiers,
)


def results(*values: int):
    return [DiceResult(v) for v in values]


def active(rs):
    return [r.result for r in rs if r.active]


class TestDiceResult:
    def test_count_overrides_result(self) -> None:
        r = DiceResult(5, count=1)
        assert r.value == 1

    def test_to_json_omits_unset_flags(self) -> None:
        assert DiceResult(3).to_json() == {"result": 3, "active": True}

    def test_from_data(self) -> None:
        r = DiceResult.from_data({"result": 2, "active": False, "rerolled": True})
        assert r == DiceResult(2, active=False, rerolled=True)

    def test_from_data_requires_result(self) -> None:
        with pytest.raises(InvalidArgument):
            DiceResult.from_data({"active": True})


class TestCompareResult:
    def test_comparisons(self) -> None:
        assert compare_result(3, "=", 3)
        assert compare_result(2, "<", 3)
        assert compare_result(3, "<=", 3)
        assert compare_result(4, ">", 3)
        assert compare_result(3, ">=", 3)

    def test_unknown_comparison(self) -> None:
        with pytest.raises(InvalidArgument):
            compare_result(1, "=<", 2)


class TestKeepOrDrop:
    def test_keep_highest(self) -> None:
        rs = keep_or_drop(results(1, 6, 3, 3), 3, keep=True, highest=True)
        assert active(rs) == [6, 3, 3]
        assert rs[0].discarded

    def test_keep_lowest_breaks_ties_in_order(self) -> None:
        rs = keep_or_drop(results(1, 6, 3, 3), 2, keep=True, highest=False)
        assert active(rs) == [1, 3]
        assert rs[2].discarded and not rs[3].discarded

    def test_drop_lowest(self) -> None:
        rs = keep_or_drop(results(4, 2, 5), 1, keep=False, highest=False)
        assert active(rs) == [4, 5]

    def test_drop_highest(self) -> None:
        rs = keep_or_drop(results(4, 2, 5), 2, keep=False, highest=True)
        assert active(rs) == [2]

    def test_keep_all(self) -> None:
        rs = keep_or_drop(results(4, 2, 5), 3, keep=True, highest=True)
        assert active(rs) == [4, 2, 5]

    def test_keep_none(self) -> None:
        rs = keep_or_drop(results(4, 2, 5), 0, keep=True, highest=True)
        assert active(rs) == []

    def test_drop_more_than_rolled(self) -> None:
        rs = keep_or_drop(results(4, 2), 5, keep=False, highest=False)
        assert active(rs) == []

    def test_ignores_inactive_results(self) -> None:
        rs = results(1, 6, 4)
        rs[1].active = False
        keep_or_drop(rs, 1, keep=True, highest=True)
        assert active(rs) == [4]
        assert not rs[1].discarded


class TestSplitModifiers:
    def test_split(self) -> None:
        assert split_modifiers("kh3r1x") == ["kh3", "r1", "x"]

    def test_comparisons_stay_with_their_command(self) -> None:
        assert split_modifiers("cs>=5df=1") == ["cs>=5", "df=1"]

    def test_empty(self) -> None:
        assert split_modifiers(None) == []
