import re
import typing

from rollexpr.config import EngineConfig
from rollexpr.errors import (
    AlreadyEvaluated,
    Cancelled,
    InvalidArgument,
    UnevaluatedString,
    UnknownTerm,
)
from rollexpr import modifiers
from rollexpr.evaluation import EvaluationContext, drive, drive_async
from rollexpr.modifiers import DiceResult, evaluate_modifiers

Number = typing.Union[int, float]

FLAVOR_REGEXP_STRING = r"(?:\[([^\]]+)\])"
MODIFIERS_REGEXP_STRING = r"([^ (){}\[\]+\-*/]+)"
POOL_MODIFIERS_REGEXP_STRING = r"([^ (){}\[\]+\-*/%,]+)"


def to_number(value: typing.Any) -> Number:
    if isinstance(value, bool):
        raise InvalidArgument("expected a number, got %r" % value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            pass
    raise InvalidArgument("expected a number, got %r" % (value,))


def format_number(value: Number) -> str:
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def _serialize(value: typing.Any) -> typing.Any:
    if hasattr(value, "to_json"):
        return value.to_json()
    if isinstance(value, (list, tuple)):
        return [_serialize(x) for x in value]
    if isinstance(value, dict):
        return dict(value)
    return value


class RollTerm:
    """A single node of a parsed formula.

    Every term can be evaluated exactly once. Subclasses implement
    ``expression`` and ``total``, declare which attributes survive
    serialization in ``SERIALIZE_ATTRIBUTES`` and put their evaluation work
    in the ``_evaluate`` generator.
    """

    REGEXP: typing.Optional[typing.Pattern] = None
    SERIALIZE_ATTRIBUTES: typing.Tuple[str, ...] = ()

    is_intermediate = False

    def __init__(
        self,
        options: typing.Optional[typing.Mapping[str, typing.Any]] = None,
        config: typing.Optional[EngineConfig] = None,
    ) -> None:
        self.options: typing.Dict[str, typing.Any] = dict(options or {})
        self._evaluated = False
        self._config = config
        # dice of intermediate terms that were folded into this one
        self.carried_dice: typing.List["RollTerm"] = []

    @property
    def config(self) -> EngineConfig:
        if self._config is None:
            self._config = EngineConfig.default()
        return self._config

    @property
    def evaluated(self) -> bool:
        return self._evaluated

    @property
    def flavor(self) -> str:
        return self.options.get("flavor") or ""

    @property
    def expression(self) -> str:
        raise NotImplementedError

    @property
    def formula(self) -> str:
        result = self.expression
        if self.flavor:
            result += "[%s]" % self.flavor
        return result

    @property
    def total(self):
        raise NotImplementedError

    @property
    def is_deterministic(self) -> bool:
        return not self.carried_dice

    @property
    def dice(self) -> typing.List["RollTerm"]:
        return list(self.carried_dice)

    def evaluate(self, minimize=False, maximize=False, config=None, cancel=None):
        context = EvaluationContext(config or self._config, minimize, maximize, cancel)
        return drive(self.evaluation_steps(context), context)

    async def evaluate_async(self, minimize=False, maximize=False, config=None, cancel=None):
        context = EvaluationContext(config or self._config, minimize, maximize, cancel)
        return await drive_async(self.evaluation_steps(context), context)

    def evaluation_steps(self, context: EvaluationContext):
        if self._evaluated:
            raise AlreadyEvaluated(type(self).__name__)
        self._evaluated = True
        try:
            yield from self._evaluate(context)
        except (Cancelled, GeneratorExit):
            self._rollback()
            raise
        return self

    def _evaluate(self, context: EvaluationContext):
        yield from ()

    def _rollback(self) -> None:
        """Forget the partial work of a cancelled evaluation."""
        self._evaluated = False

    def to_json(self) -> typing.Dict[str, typing.Any]:
        data = {
            "class": type(self).__name__,
            "options": dict(self.options),
            "evaluated": self._evaluated,
        }
        for attr in self.SERIALIZE_ATTRIBUTES:
            data[attr] = _serialize(getattr(self, attr))
        return data

    @classmethod
    def from_data(
        cls,
        data: typing.Mapping[str, typing.Any],
        config: typing.Optional[EngineConfig] = None,
    ) -> "RollTerm":
        if isinstance(data, RollTerm):
            return data
        config = EngineConfig.default() if config is None else config
        name = data.get("class") if isinstance(data, typing.Mapping) else None
        if not isinstance(name, str):
            raise UnknownTerm("serialized term %r has no class" % (data,))
        term_cls = term_types(config).get(name)
        if term_cls is None:
            if "faces" not in data:
                raise UnknownTerm("unknown term class %s" % name)
            term_cls = config.dice_kinds["d"]
        return term_cls._from_data(data, config)

    @classmethod
    def _from_data(cls, data, config: EngineConfig) -> "RollTerm":
        kwargs = {
            attr: data[attr] for attr in cls.SERIALIZE_ATTRIBUTES if attr in data
        }
        term = cls(options=data.get("options"), config=config, **kwargs)
        term._evaluated = data.get("evaluated", True)
        return term

    def __repr__(self) -> str:
        return "%s(%s)" % (type(self).__name__, self.formula)


class NumericTerm(RollTerm):
    REGEXP = re.compile(r"^([0-9]+(?:\.[0-9]+)?)%s?$" % FLAVOR_REGEXP_STRING)
    SERIALIZE_ATTRIBUTES = ("number",)

    def __init__(self, number, options=None, config=None) -> None:
        super().__init__(options, config)
        self.number = to_number(number)
        if isinstance(self.number, float) and self.number != self.number:
            raise InvalidArgument("NaN is not a valid number")

    @property
    def expression(self) -> str:
        return format_number(self.number)

    @property
    def total(self) -> Number:
        return self.number

    @classmethod
    def match_term(cls, expression: str) -> typing.Optional[typing.Match]:
        return cls.REGEXP.match(expression)

    @classmethod
    def from_match(cls, match: typing.Match, config=None) -> "NumericTerm":
        number, flavor = match.groups()
        return cls(number, options={"flavor": flavor} if flavor else None, config=config)


class OperatorTerm(RollTerm):
    OPERATORS = ("+", "-", "*", "/", "%")
    REGEXP = re.compile(r"^[+\-*/%]$")
    SERIALIZE_ATTRIBUTES = ("operator",)

    def __init__(self, operator: str, options=None, config=None) -> None:
        super().__init__(options, config)
        if operator not in self.OPERATORS:
            raise InvalidArgument("unknown operator %r" % (operator,))
        self.operator = operator

    @property
    def flavor(self) -> str:
        return ""

    @property
    def expression(self) -> str:
        return " %s " % self.operator

    @property
    def total(self) -> str:
        return " %s " % self.operator


class StringTerm(RollTerm):
    """A piece of formula that could not be classified (yet).

    Strings that touch a parenthetical, like the ``d6`` in ``(1d4)d6``, are
    fused with the evaluated neighbour and classified again before dice are
    rolled. Any string that survives that is an error.
    """

    SERIALIZE_ATTRIBUTES = ("term",)

    def __init__(self, term: str, options=None, config=None) -> None:
        super().__init__(options, config)
        self.term = term

    @property
    def expression(self) -> str:
        return self.term

    @property
    def total(self):
        raise UnevaluatedString(self.term)

    @property
    def is_deterministic(self) -> bool:
        from rollexpr.roll_parser import classify_term

        classified = classify_term(self.term, self.config)
        if isinstance(classified, StringTerm):
            return True
        return classified.is_deterministic

    def evaluation_steps(self, context: EvaluationContext):
        raise UnevaluatedString(self.term)
        yield


def _propagate_flavor(roll, flavor: str) -> None:
    for term in roll.terms:
        if not term.options.get("flavor"):
            term.options["flavor"] = flavor


class ParentheticalTerm(RollTerm):
    OPEN_REGEXP = re.compile(r"([A-Za-z][A-Za-z0-9]+)?\(")
    CLOSE_REGEXP = re.compile(r"\)")
    SERIALIZE_ATTRIBUTES = ("term",)

    is_intermediate = True

    def __init__(self, term=None, roll=None, options=None, config=None) -> None:
        super().__init__(options, config)
        self.term = term
        self.roll = roll
        if self.roll is not None:
            self.term = roll.formula
            self._evaluated = roll.evaluated
        if self.term is None:
            raise InvalidArgument("a parenthetical needs a term or a roll")

    @property
    def dice(self):
        inner = [] if self.roll is None else self.roll.dice
        return list(self.carried_dice) + inner

    @property
    def total(self):
        return None if self.roll is None else self.roll.total

    @property
    def expression(self) -> str:
        return "(%s)" % self.term

    @property
    def is_deterministic(self) -> bool:
        if self.roll is not None:
            return self.roll.is_deterministic
        from rollexpr.roll import Roll

        return Roll(self.term, config=self.config).is_deterministic

    def _evaluate(self, context: EvaluationContext):
        from rollexpr.roll import Roll

        roll = self.roll
        if roll is None:
            roll = Roll(self.term, config=context.config)
        yield from roll.evaluation_steps(context)
        self.roll = roll
        if self.flavor:
            _propagate_flavor(self.roll, self.flavor)

    def to_json(self):
        data = super().to_json()
        if self.roll is not None and self.roll.evaluated:
            data["roll"] = self.roll.to_json()
        return data

    @classmethod
    def _from_data(cls, data, config: EngineConfig) -> "ParentheticalTerm":
        from rollexpr.roll import Roll

        roll = None
        if data.get("roll") is not None:
            roll = Roll.from_data(data["roll"], config=config)
        term = cls(term=data.get("term"), roll=roll, options=data.get("options"), config=config)
        term._evaluated = data.get("evaluated", True) if roll is None else roll.evaluated
        return term

    @classmethod
    def from_terms(cls, terms, options=None, config=None) -> "ParentheticalTerm":
        """Wrap already constructed terms, e.g. ``[Die, OperatorTerm, NumericTerm]``."""
        from rollexpr.roll import Roll

        roll = Roll.from_terms(terms, config=config)
        return cls(roll=roll, options=options, config=config)


class MathTerm(RollTerm):
    SERIALIZE_ATTRIBUTES = ("fn", "terms")

    is_intermediate = True

    def __init__(self, fn: str, terms=(), options=None, config=None) -> None:
        super().__init__(options, config)
        self.fn = fn
        self.terms = [str(t).strip() for t in terms]
        self.rolls: typing.List[typing.Any] = []
        self.result: typing.Optional[Number] = None

    @property
    def dice(self):
        return list(self.carried_dice) + [d for r in self.rolls for d in r.dice]

    @property
    def total(self):
        return self.result

    @property
    def expression(self) -> str:
        return "%s(%s)" % (self.fn, ",".join(self.terms))

    @property
    def is_deterministic(self) -> bool:
        from rollexpr.roll import Roll

        return all(Roll(t, config=self.config).is_deterministic for t in self.terms)

    def _evaluate(self, context: EvaluationContext):
        from rollexpr.roll import Roll

        fn = context.config.math_function(self.fn)
        for arg in self.terms:
            roll = Roll(arg, config=context.config)
            yield from roll.evaluation_steps(context)
            if self.flavor:
                _propagate_flavor(roll, self.flavor)
            self.rolls.append(roll)
        self.result = fn(*(roll.total for roll in self.rolls))

    def _rollback(self) -> None:
        super()._rollback()
        self.rolls = []
        self.result = None

    def to_json(self):
        data = super().to_json()
        if self._evaluated and self.rolls:
            data["rolls"] = [r.to_json() for r in self.rolls]
            data["result"] = self.result
        return data

    @classmethod
    def _from_data(cls, data, config: EngineConfig) -> "MathTerm":
        from rollexpr.roll import Roll

        term = super()._from_data(data, config)
        term.rolls = [Roll.from_data(r, config=config) for r in data.get("rolls") or []]
        term.result = data.get("result")
        return term


class PoolTerm(RollTerm):
    """A brace pool such as ``{4d6, 3d8}kh``.

    Each comma separated formula is rolled on its own and its total becomes
    one result of the pool, which keep/drop and success counting then work on.
    """

    MODIFIERS = {
        "k": "keep",
        "kh": "keep",
        "kl": "keep",
        "d": "drop",
        "dh": "drop",
        "dl": "drop",
        "cs": "count_success",
        "cf": "count_failures",
    }
    OPEN_REGEXP = re.compile(r"\{")
    CLOSE_REGEXP = re.compile(
        r"\}%s?%s?" % (POOL_MODIFIERS_REGEXP_STRING, FLAVOR_REGEXP_STRING)
    )
    SERIALIZE_ATTRIBUTES = ("terms", "modifiers", "rolls", "results")

    def __init__(
        self, terms=(), modifiers=(), rolls=(), results=(), options=None, config=None
    ) -> None:
        from rollexpr.roll import Roll

        super().__init__(options, config)
        self.terms = [str(t).strip() for t in terms]
        self.modifiers = list(modifiers)
        self.rolls = [
            r if isinstance(r, Roll) else Roll.from_data(r, config=config) for r in rolls
        ]
        self.results = [DiceResult.from_data(r) for r in results]
        if self.results:
            self._evaluated = True

    @property
    def dice(self):
        return list(self.carried_dice) + [d for r in self.rolls for d in r.dice]

    @property
    def expression(self) -> str:
        return "{%s}%s" % (",".join(self.terms), "".join(self.modifiers))

    @property
    def total(self):
        if not self._evaluated:
            return None
        return sum(r.value for r in self.results if r.active)

    @property
    def values(self) -> typing.List[Number]:
        return [r.result for r in self.results if r.active]

    @property
    def is_deterministic(self) -> bool:
        from rollexpr.roll import Roll

        return all(Roll(t, config=self.config).is_deterministic for t in self.terms)

    def _evaluate(self, context: EvaluationContext):
        from rollexpr.roll import Roll

        for formula in self.terms:
            roll = Roll(formula, config=context.config)
            yield from roll.evaluation_steps(context)
            self.rolls.append(roll)
            self.results.append(DiceResult(roll.total))
        yield from evaluate_modifiers(self, context)

    def _rollback(self) -> None:
        super()._rollback()
        self.rolls = []
        self.results = []

    def keep(self, modifier: str, context):
        return modifiers.keep(self.results, modifier)

    def drop(self, modifier: str, context):
        return modifiers.drop(self.results, modifier)

    def count_success(self, modifier: str, context):
        return modifiers.count(self.results, modifier, None, flag_success=True)

    def count_failures(self, modifier: str, context):
        return modifiers.count(self.results, modifier, None, flag_failure=True)


def term_types(config: EngineConfig) -> typing.Dict[str, type]:
    """Every term class a serialized ``class`` field may name."""
    types: typing.Dict[str, type] = {
        cls.__name__: cls
        for cls in (
            NumericTerm,
            OperatorTerm,
            StringTerm,
            ParentheticalTerm,
            MathTerm,
            PoolTerm,
        )
    }
    types["DicePool"] = PoolTerm
    for cls in config.dice_kinds.values():
        types[cls.__name__] = cls
    return types
