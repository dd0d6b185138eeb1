"""Shared machinery for dice modifiers.

Every term type that accepts modifiers declares a ``MODIFIERS`` table that
maps a short command (``kh``, ``r``, ``x``...) to the name of a handler
method. :func:`evaluate_modifiers` resolves each requested modifier against
that table and calls the handler, which mutates the term's results in place.
A handler that returns ``False`` did not understand its modifier, and the
modifier is dropped from the term.
"""

import logging
import operator
import re
import typing

from rollexpr.errors import InvalidArgument

logger = logging.getLogger(__name__)

Number = typing.Union[int, float]

COMPARISONS: typing.Dict[str, typing.Callable[[Number, Number], bool]] = {
    "=": operator.eq,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}

MODIFIER_REGEXP = re.compile(r"([A-Za-z]+)([^A-Za-z\s()+\-*/]+)?")

_COMMAND_REGEXP = re.compile(r"[A-Za-z]+")


class DiceResult:
    FLAGS = ("count", "success", "failure", "discarded", "rerolled", "exploded")

    def __init__(
        self,
        result: Number,
        active: bool = True,
        count: typing.Optional[Number] = None,
        success: typing.Optional[bool] = None,
        failure: typing.Optional[bool] = None,
        discarded: typing.Optional[bool] = None,
        rerolled: typing.Optional[bool] = None,
        exploded: typing.Optional[bool] = None,
    ) -> None:
        self.result = result
        self.active = active
        self.count = count
        self.success = success
        self.failure = failure
        self.discarded = discarded
        self.rerolled = rerolled
        self.exploded = exploded

    @property
    def value(self) -> Number:
        return self.result if self.count is None else self.count

    def discard(self) -> None:
        self.discarded = True
        self.active = False

    def to_json(self) -> typing.Dict[str, typing.Any]:
        data: typing.Dict[str, typing.Any] = {"result": self.result, "active": self.active}
        for flag in self.FLAGS:
            value = getattr(self, flag)
            if value is not None:
                data[flag] = value
        return data

    @classmethod
    def from_data(cls, data: typing.Mapping[str, typing.Any]) -> "DiceResult":
        if isinstance(data, DiceResult):
            return data
        if "result" not in data:
            raise InvalidArgument("dice result %r has no 'result'" % (data,))
        return cls(
            data["result"],
            active=data.get("active", True),
            **{flag: data[flag] for flag in cls.FLAGS if flag in data},
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DiceResult):
            return NotImplemented
        return self.to_json() == other.to_json()

    def __repr__(self) -> str:
        return "DiceResult(%s)" % ", ".join(
            "%s=%r" % (k, v) for k, v in self.to_json().items()
        )


def compare_result(result: Number, comparison: str, target: Number) -> bool:
    fn = COMPARISONS.get(comparison)
    if fn is None:
        raise InvalidArgument("unknown comparison '%s'" % comparison)
    return fn(result, target)


def parse_int(text: typing.Optional[str], default: typing.Optional[int] = None):
    if text is None or not text.isdigit():
        return default
    return int(text)


def keep_or_drop(
    results: typing.List[DiceResult],
    number: int,
    keep: bool = True,
    highest: bool = True,
) -> typing.List[DiceResult]:
    """Discard active results so that ``number`` are kept (or dropped).

    Ties at the cut are discarded in the order they appear in ``results``.
    """
    ascending = keep == highest
    values = sorted((r.result for r in results if r.active), reverse=not ascending)

    n_discard = len(values) - number if keep else number
    n_discard = max(0, min(n_discard, len(values)))
    cut = values[n_discard] if n_discard < len(values) else None
    comparison = "<" if ascending else ">"

    discarded = 0
    ties = []
    for r in results:
        if not r.active:
            continue
        if cut is None or compare_result(r.result, comparison, cut):
            r.discard()
            discarded += 1
        elif r.result == cut:
            ties.append(r)

    for r in ties:
        if discarded >= n_discard:
            break
        r.discard()
        discarded += 1
    return results


def apply_count(
    results: typing.List[DiceResult],
    comparison: str,
    target: Number,
    flag_success: bool = False,
    flag_failure: bool = False,
) -> None:
    for r in results:
        success = compare_result(r.result, comparison, target)
        if flag_success:
            r.success = success
            if success:
                r.failure = None
        elif flag_failure:
            r.failure = success
            if success:
                r.success = None
        r.count = 1 if success else 0


def apply_deduct(
    results: typing.List[DiceResult],
    comparison: typing.Optional[str],
    target: typing.Optional[Number],
    deduct_failure: bool = False,
    invert_failure: bool = False,
) -> None:
    for r in results:
        if comparison is not None:
            if compare_result(r.result, comparison, target):
                r.failure = True
                r.success = None
        elif r.success is False:
            # without a target, results already marked unsuccessful are failures
            r.failure = True
            r.success = None

        if deduct_failure:
            if r.failure:
                r.count = -1
        elif invert_failure:
            if r.failure:
                r.count = -1 * r.result


_KEEP_REGEXP = re.compile(r"k([hl])?([0-9]+)?", re.I)
_DROP_REGEXP = re.compile(r"d([hl])?([0-9]+)?", re.I)
_COUNT_REGEXP = re.compile(r"(?:cs|cf)([<>=]+)?([0-9]+)?", re.I)


def keep(results: typing.List[DiceResult], modifier: str) -> typing.Optional[bool]:
    """``k``, ``kh``, ``kl``: keep the highest (default) or lowest n results."""
    match = _KEEP_REGEXP.match(modifier)
    if not match:
        return False
    direction, number = match.groups()
    direction = (direction or "h").lower()
    keep_or_drop(results, parse_int(number, 1), keep=True, highest=direction == "h")
    return None


def drop(results: typing.List[DiceResult], modifier: str) -> typing.Optional[bool]:
    """``d``, ``dl``, ``dh``: drop the lowest (default) or highest n results."""
    match = _DROP_REGEXP.match(modifier)
    if not match:
        return False
    direction, number = match.groups()
    direction = (direction or "l").lower()
    keep_or_drop(results, parse_int(number, 1), keep=False, highest=direction != "l")
    return None


def count(
    results: typing.List[DiceResult],
    modifier: str,
    default_target: typing.Optional[Number],
    flag_success: bool = False,
    flag_failure: bool = False,
) -> typing.Optional[bool]:
    """``cs`` and ``cf``: count results that meet a comparison."""
    match = _COUNT_REGEXP.match(modifier)
    if not match:
        return False
    comparison, target = match.groups()
    target = parse_int(target, default_target)
    if target is None:
        return False
    apply_count(
        results,
        comparison or "=",
        target,
        flag_success=flag_success,
        flag_failure=flag_failure,
    )
    return None


def split_modifiers(text: typing.Optional[str]) -> typing.List[str]:
    """Split ``kh3r1x`` into ``["kh3", "r1", "x"]``."""
    return [m.group(0) for m in MODIFIER_REGEXP.finditer(text or "")]


def _evaluate_modifier(term, command: str, modifier: str, context) -> None:
    handler = getattr(term, term.MODIFIERS[command])
    if handler(modifier, context) is False:
        logger.debug("dropping unhandled modifier %r on %s", modifier, term.expression)
        return
    term.modifiers.append(modifier)


def evaluate_modifiers(term, context) -> typing.Generator[None, None, None]:
    """Apply ``term.modifiers`` in order, keeping only the ones that were handled."""
    requested = [m.lower() for m in term.modifiers]
    term.modifiers = []
    by_length = sorted(term.MODIFIERS, key=len, reverse=True)

    for modifier in requested:
        match = _COMMAND_REGEXP.match(modifier)
        if match is None:
            logger.debug("dropping modifier %r without a command", modifier)
            continue
        command = match.group(0)

        if command in term.MODIFIERS:
            _evaluate_modifier(term, command, modifier, context)
            yield
            continue

        # compound command such as "kkx": peel off the longest known prefix
        while command:
            for known in by_length:
                if command.startswith(known):
                    _evaluate_modifier(term, known, known, context)
                    yield
                    command = command[len(known) :]
                    break
            else:
                logger.debug("giving up on unknown modifier %r", command)
                command = ""
