import math
import re
import typing

from rollexpr import modifiers
from rollexpr.errors import AlreadyEvaluated, InvalidArgument, LimitExceeded
from rollexpr.evaluation import EvaluationContext
from rollexpr.modifiers import (
    DiceResult,
    apply_deduct,
    compare_result,
    evaluate_modifiers,
    parse_int,
    split_modifiers,
)
from rollexpr.terms import (
    FLAVOR_REGEXP_STRING,
    MODIFIERS_REGEXP_STRING,
    RollTerm,
    StringTerm,
)

Number = typing.Union[int, float]

_REROLL_REGEXP = re.compile(r"rr?([0-9]+)?([<>=]+)?([0-9]+)?", re.I)
_EXPLODE_REGEXP = re.compile(r"xo?([0-9]+)?([<>=]+)?([0-9]+)?", re.I)
_DEDUCT_REGEXP = re.compile(r"(?:df|sf)([<>=]+)?([0-9]+)?", re.I)
_MINIMUM_REGEXP = re.compile(r"min([0-9]+)", re.I)
_MAXIMUM_REGEXP = re.compile(r"max([0-9]+)", re.I)


def _limit_and_target(match: typing.Match, default_target: int):
    """Split ``[max][comparison][target]`` as used by reroll and explode."""
    max_count, comparison, target = match.groups()
    # a lone number is the target, not the limit
    if max_count and not (target or comparison):
        target, max_count = max_count, None
    return (
        parse_int(max_count),
        comparison or "=",
        parse_int(target, default_target),
    )


class DiceTerm(RollTerm):
    """Base class for terms that roll ``number`` dice of ``faces`` sides.

    Subclasses pick a ``DENOMINATION`` (the character after the ``d``) and
    a ``MODIFIERS`` table naming which handler methods below they accept.
    """

    DENOMINATION = ""
    MODIFIERS: typing.Dict[str, str] = {}
    REGEXP = re.compile(
        r"^([0-9]+)?[dD]([A-Za-z]|[0-9]+)%s?%s?$"
        % (MODIFIERS_REGEXP_STRING, FLAVOR_REGEXP_STRING)
    )
    SERIALIZE_ATTRIBUTES = ("number", "faces", "modifiers", "results")

    def __init__(
        self,
        number: int = 1,
        faces: typing.Optional[int] = 6,
        modifiers: typing.Iterable[str] = (),
        results: typing.Iterable[typing.Any] = (),
        options=None,
        config=None,
    ) -> None:
        super().__init__(options, config)
        self.number = number
        self.faces = faces
        self.modifiers = list(modifiers)
        self.results = [DiceResult.from_data(r) for r in results]
        if self.results:
            self._evaluated = True

    @property
    def expression(self) -> str:
        x = self.faces if self.DENOMINATION == "d" else self.DENOMINATION
        return "%sd%s%s" % (self.number, x, "".join(self.modifiers))

    @property
    def total(self) -> typing.Optional[Number]:
        if not self._evaluated:
            return None
        return sum(r.value for r in self.results if r.active)

    @property
    def values(self) -> typing.List[Number]:
        return [r.result for r in self.results if r.active]

    @property
    def is_deterministic(self) -> bool:
        return False

    @property
    def dice(self):
        return list(self.carried_dice) + [self]

    def alter(self, multiply: Number = 1, add: int = 0) -> "DiceTerm":
        """Scale the number of dice: multiplied first, then added."""
        if self._evaluated:
            raise AlreadyEvaluated(type(self).__name__)
        if not isinstance(multiply, (int, float)) or not math.isfinite(multiply) or multiply < 0:
            multiply = 1
        if not isinstance(add, int):
            add = 0
        self.number = math.floor(self.number * multiply + 0.5) + add
        return self

    def _check_limits(self, context: EvaluationContext) -> None:
        if not isinstance(self.number, int) or isinstance(self.number, bool) or self.number < 0:
            raise InvalidArgument("cannot roll %r dice" % (self.number,))
        if self.number > context.config.max_dice:
            raise LimitExceeded(
                "cannot roll more than %s dice, %s requested"
                % (context.config.max_dice, self.number)
            )
        if not isinstance(self.faces, int) or isinstance(self.faces, bool):
            raise InvalidArgument("a die cannot have %r faces" % (self.faces,))
        if self.faces < 1:
            raise LimitExceeded("a die must have at least one face, not %s" % self.faces)

    def _evaluate(self, context: EvaluationContext):
        self._check_limits(context)
        for _ in range(self.number):
            self.roll(context)
            yield
        yield from evaluate_modifiers(self, context)

    def _rollback(self) -> None:
        super()._rollback()
        self.results = []

    def roll_value(self, context: EvaluationContext) -> Number:
        if context.minimize:
            return min(1, self.faces)
        if context.maximize:
            return self.faces
        # a draw of exactly 0.0 would otherwise give face 0
        return max(1, math.ceil(context.draw() * self.faces))

    def roll(self, context: EvaluationContext) -> DiceResult:
        result = DiceResult(self.roll_value(context))
        self.results.append(result)
        return result

    def roll_extra(self, context: EvaluationContext) -> DiceResult:
        """Roll a die added by a modifier, within the engine's dice cap."""
        if len(self.results) >= context.config.max_dice:
            raise LimitExceeded(
                "%s would roll more than %s dice" % (self.expression, context.config.max_dice)
            )
        return self.roll(context)

    # Result display

    def get_result_label(self, result: DiceResult) -> str:
        return str(result.result)

    def get_result_css(self, result: DiceResult) -> typing.List[str]:
        flagged = result.success is not None or result.failure is not None
        classes = [
            "success" if result.success else None,
            "failure" if result.failure else None,
            "rerolled" if result.rerolled else None,
            "exploded" if result.exploded else None,
            "discarded" if result.discarded else None,
            "min" if not flagged and result.result == 1 else None,
            "max" if not flagged and result.result == self.faces else None,
        ]
        return [c for c in classes if c]

    def get_tooltip_data(self, default_flavor: str = "") -> typing.Dict[str, typing.Any]:
        return {
            "formula": self.expression,
            "total": self.total,
            "faces": self.faces,
            "flavor": self.flavor or default_flavor,
            "rolls": [
                {
                    "result": self.get_result_label(r),
                    "classes": " ".join(self.get_result_css(r)),
                }
                for r in self.results
            ],
        }

    # Modifiers

    def _roll_for_matches(
        self,
        context: EvaluationContext,
        comparison: str,
        target: Number,
        max_count: typing.Optional[int],
        recursive: bool,
        reroll: bool,
    ) -> None:
        """Roll one extra die per active result meeting the comparison.

        Rerolled results are deactivated, exploded ones stay active. Unless
        ``recursive``, the extra dice are not checked themselves.
        """
        initial = len(self.results)
        checked = 0
        while checked < len(self.results):
            if not recursive and checked >= initial:
                break
            if max_count is not None and max_count <= 0:
                break
            r = self.results[checked]
            checked += 1
            if not r.active or not compare_result(r.result, comparison, target):
                continue
            if reroll:
                r.rerolled = True
                r.active = False
            else:
                r.exploded = True
            self.roll_extra(context)
            if max_count is not None:
                max_count -= 1

    def reroll(self, modifier: str, context: EvaluationContext, recursive: bool = False):
        """``r``: reroll results meeting a comparison, once. ``r`` alone rerolls 1s.

        ``r<3`` rerolls anything under 3, ``r2=1`` rerolls at most two 1s.
        """
        match = _REROLL_REGEXP.match(modifier)
        if not match:
            return False
        max_count, comparison, target = _limit_and_target(match, 1)
        # fixed faces would reroll forever
        recursive = recursive and not (context.minimize or context.maximize)
        self._roll_for_matches(context, comparison, target, max_count, recursive, reroll=True)

    def reroll_recursive(self, modifier: str, context: EvaluationContext):
        """``rr``: keep rerolling until no active result meets the comparison."""
        return self.reroll(modifier, context, recursive=True)

    def explode(self, modifier: str, context: EvaluationContext, recursive: bool = True):
        """``x``: roll an extra die for every result meeting a comparison.

        Defaults to exploding on the highest face; new dice may explode again.
        """
        match = _EXPLODE_REGEXP.match(modifier)
        if not match:
            return False
        max_count, comparison, target = _limit_and_target(match, self.faces)
        recursive = recursive and not (context.minimize or context.maximize)
        self._roll_for_matches(context, comparison, target, max_count, recursive, reroll=False)

    def explode_once(self, modifier: str, context: EvaluationContext):
        """``xo``: like ``x`` but the extra dice never explode themselves."""
        return self.explode(modifier, context, recursive=False)

    def keep(self, modifier: str, context: EvaluationContext):
        return modifiers.keep(self.results, modifier)

    def drop(self, modifier: str, context: EvaluationContext):
        return modifiers.drop(self.results, modifier)

    def count_success(self, modifier: str, context: EvaluationContext):
        return modifiers.count(self.results, modifier, self.faces, flag_success=True)

    def count_failures(self, modifier: str, context: EvaluationContext):
        return modifiers.count(self.results, modifier, self.faces, flag_failure=True)

    def count_even(self, modifier: str, context: EvaluationContext):
        for r in self.results:
            r.success = r.result % 2 == 0
            r.count = 1 if r.success else 0

    def count_odd(self, modifier: str, context: EvaluationContext):
        for r in self.results:
            r.success = r.result % 2 != 0
            r.count = 1 if r.success else 0

    def _deduct(self, modifier: str, deduct_failure=False, invert_failure=False):
        match = _DEDUCT_REGEXP.match(modifier)
        if not match:
            return False
        comparison, target = match.groups()
        if target is not None:
            comparison, target = comparison or "=", int(target)
        else:
            comparison = None
        apply_deduct(
            self.results,
            comparison,
            target,
            deduct_failure=deduct_failure,
            invert_failure=invert_failure,
        )

    def deduct_failures(self, modifier: str, context: EvaluationContext):
        """``df``: failures count as -1, e.g. ``6d10cs>7df=1``."""
        return self._deduct(modifier, deduct_failure=True)

    def subtract_failures(self, modifier: str, context: EvaluationContext):
        """``sf``: failures subtract their own value from the total."""
        return self._deduct(modifier, invert_failure=True)

    def minimum(self, modifier: str, context: EvaluationContext):
        """``min3``: any result below 3 counts as 3."""
        match = _MINIMUM_REGEXP.match(modifier)
        if not match:
            return False
        target = int(match.group(1))
        for r in self.results:
            if r.result < target:
                r.count = target
                r.rerolled = True

    def maximum(self, modifier: str, context: EvaluationContext):
        """``max5``: any result above 5 counts as 5."""
        match = _MAXIMUM_REGEXP.match(modifier)
        if not match:
            return False
        target = int(match.group(1))
        for r in self.results:
            if r.result > target:
                r.count = target
                r.rerolled = True

    # Factories

    @classmethod
    def match_term(
        cls, expression: str, impute_number: bool = True
    ) -> typing.Optional[typing.Match]:
        match = cls.REGEXP.match(expression)
        if match is None:
            return None
        if match.group(1) is None and not impute_number:
            return None
        return match

    @classmethod
    def from_match(cls, match: typing.Match, config) -> RollTerm:
        number, denomination, modifier_text, flavor = match.groups()
        term_cls = config.denomination(denomination)
        options = {"flavor": flavor} if flavor else None
        faces = int(denomination) if denomination.isdigit() else None
        # "2dd" names the numeric die without giving it faces
        if term_cls is None or (faces is None and term_cls is config.dice_kinds["d"]):
            return StringTerm(match.group(0), config=config)
        if not issubclass(term_cls, DiceTerm):
            raise InvalidArgument(
                "denomination %s is not registered as a dice term" % denomination
            )
        return term_cls(
            number=int(number) if number is not None else 1,
            faces=faces,
            modifiers=split_modifiers(modifier_text),
            options=options,
            config=config,
        )

    @classmethod
    def _from_data(cls, data, config) -> "DiceTerm":
        term = cls(
            number=data.get("number", 1),
            faces=data.get("faces"),
            modifiers=data.get("modifiers") or (),
            results=data.get("results") or (),
            options=data.get("options"),
            config=config,
        )
        term._evaluated = bool(data.get("evaluated")) or bool(term.results)
        return term


class Die(DiceTerm):
    """A die with any number of faces: ``4d6kh3``, ``2d10r<3``, ``d20``."""

    DENOMINATION = "d"
    MODIFIERS = {
        "r": "reroll",
        "rr": "reroll_recursive",
        "x": "explode",
        "xo": "explode_once",
        "k": "keep",
        "kh": "keep",
        "kl": "keep",
        "d": "drop",
        "dh": "drop",
        "dl": "drop",
        "min": "minimum",
        "max": "maximum",
        "even": "count_even",
        "odd": "count_odd",
        "cs": "count_success",
        "cf": "count_failures",
        "df": "deduct_failures",
        "sf": "subtract_failures",
    }


class Coin(DiceTerm):
    """A two-sided coin, ``0`` for tails and ``1`` for heads: ``3dcc1``."""

    DENOMINATION = "c"
    MODIFIERS = {"c": "call"}

    def __init__(self, number=1, faces=None, modifiers=(), results=(), options=None, config=None):
        super().__init__(number, 2, modifiers, results, options, config)

    def roll_value(self, context: EvaluationContext) -> Number:
        if context.minimize:
            return 0
        if context.maximize:
            return 1
        # halves round up
        return math.floor(context.draw() + 0.5)

    def get_result_label(self, result: DiceResult) -> str:
        return {0: "T", 1: "H"}.get(result.result, str(result.result))

    def get_result_css(self, result: DiceResult) -> typing.List[str]:
        return [
            c
            for c in (
                "success" if result.success else None,
                "failure" if result.failure else None,
            )
            if c
        ]

    def call(self, modifier: str, context: EvaluationContext):
        """``c1`` counts heads as successes, ``c0`` counts tails."""
        match = re.match(r"c([01])", modifier, re.I)
        if not match:
            return False
        target = int(match.group(1))
        for r in self.results:
            r.success = r.result == target
            r.count = 1 if r.success else 0


class FateDie(DiceTerm):
    """A Fate/Fudge die with faces -1, 0 and +1: ``4df``."""

    DENOMINATION = "f"
    MODIFIERS = {
        "r": "reroll",
        "rr": "reroll_recursive",
        "k": "keep",
        "kh": "keep",
        "kl": "keep",
        "d": "drop",
        "dh": "drop",
        "dl": "drop",
    }

    def __init__(self, number=1, faces=None, modifiers=(), results=(), options=None, config=None):
        super().__init__(number, 3, modifiers, results, options, config)

    def roll_value(self, context: EvaluationContext) -> Number:
        if context.minimize:
            return -1
        if context.maximize:
            return 1
        # clamp a draw of exactly 0.0 to the lowest face
        return max(-1, math.ceil(context.draw() * self.faces) - 2)

    def roll(self, context: EvaluationContext) -> DiceResult:
        result = super().roll(context)
        if result.result == -1:
            result.failure = True
        elif result.result == 1:
            result.success = True
        return result

    def get_result_label(self, result: DiceResult) -> str:
        return {-1: "-", 0: "", 1: "+"}.get(result.result, str(result.result))
