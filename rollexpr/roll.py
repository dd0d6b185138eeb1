import enum
import json
import logging
import typing

from rollexpr import arithmetic
from rollexpr.config import EngineConfig
from rollexpr.dice import DiceTerm
from rollexpr.errors import AlreadyEvaluated, Cancelled, DiceRollError
from rollexpr.evaluation import CancelToken, EvaluationContext, drive, drive_async
from rollexpr.roll_parser import classify_term, parse
from rollexpr.terms import NumericTerm, OperatorTerm, RollTerm, format_number

logger = logging.getLogger(__name__)


class RollState(enum.Enum):
    CREATED = "created"
    EVALUATING = "evaluating"
    EVALUATED = "evaluated"
    FAILED = "failed"


def get_formula(terms: typing.Iterable[RollTerm]) -> str:
    return "".join(t.formula for t in terms)


def _fuse(left: RollTerm, right: RollTerm, config: EngineConfig) -> RollTerm:
    """Join two adjacent terms into one, e.g. ``3`` and ``d6`` into ``3d6``."""
    term = classify_term(left.expression + right.formula, config)
    if not term.flavor and left.flavor:
        term.options["flavor"] = left.flavor
    term.carried_dice = list(left.carried_dice) + list(right.carried_dice)
    return term


def simplify_terms(terms: typing.List[RollTerm], config: EngineConfig) -> typing.List[RollTerm]:
    """Fuse terms that are not separated by an operator.

    After intermediate terms have been replaced by their totals, what is left
    of ``(1d4)d6`` is ``[3, "d6"]``, which becomes the dice term ``3d6``.
    """
    simplified: typing.List[RollTerm] = []
    for term in terms:
        if (
            simplified
            and not isinstance(term, OperatorTerm)
            and not isinstance(simplified[-1], OperatorTerm)
        ):
            simplified[-1] = _fuse(simplified[-1], term, config)
        else:
            simplified.append(term)
    while simplified and isinstance(simplified[-1], OperatorTerm):
        simplified.pop()
    return simplified


class Roll:
    """A parsed dice formula, such as ``4d6kh3 + 2 * (1d8r1 + @bonus)``.

    A roll is parsed on construction and evaluated at most once, after which
    it is immutable. Evaluated rolls serialize with :meth:`to_json` and come
    back with :meth:`from_data` without rolling any dice again.
    """

    def __init__(
        self,
        formula: str,
        data: typing.Any = None,
        options: typing.Optional[typing.Mapping[str, typing.Any]] = None,
        config: typing.Optional[EngineConfig] = None,
    ) -> None:
        config = EngineConfig.default() if config is None else config
        self.data = data
        self._setup(parse(formula, data, config).terms, options, config)

    def _setup(self, terms, options, config: EngineConfig) -> None:
        self.config = config
        self.options: typing.Dict[str, typing.Any] = dict(options or {})
        self.terms: typing.List[RollTerm] = list(terms)
        self._formula = get_formula(self.terms)
        self._state = RollState.CREATED
        self._total: typing.Optional[typing.Union[int, float]] = None
        self._dice: typing.List[RollTerm] = []
        self._replayed = False
        self.error: typing.Optional[BaseException] = None

    @classmethod
    def create(cls, formula: str, data=None, options=None, config=None) -> "Roll":
        return cls(formula, data, options, config)

    @classmethod
    def from_terms(
        cls,
        terms: typing.Iterable[RollTerm],
        options=None,
        config: typing.Optional[EngineConfig] = None,
    ) -> "Roll":
        roll = cls.__new__(cls)
        roll.data = None
        roll._setup(terms, options, EngineConfig.default() if config is None else config)
        return roll

    # Properties

    @property
    def formula(self) -> str:
        return self._formula

    @property
    def state(self) -> RollState:
        return self._state

    @property
    def evaluated(self) -> bool:
        return self._state is RollState.EVALUATED

    @property
    def total(self):
        return self._total if self.evaluated else None

    @property
    def result(self) -> typing.Optional[str]:
        """The flattened totals of every term, such as ``"4 + 3"``."""
        if not self.evaluated:
            return None
        return self._flatten()

    def _flatten(self) -> str:
        return "".join(
            t.total if isinstance(t, OperatorTerm) else format_number(t.total)
            for t in self.terms
        )

    @property
    def dice(self) -> typing.List[RollTerm]:
        if self.evaluated:
            return list(self._dice)
        return [d for t in self.terms for d in t.dice]

    @property
    def is_deterministic(self) -> bool:
        # an evaluated roll has replaced its parentheticals by plain numbers
        return not self._dice and all(t.is_deterministic for t in self.terms)

    # Evaluation

    def alter(self, multiply=1, add=0) -> "Roll":
        """Scale the number of dice of every dice term, e.g. for critical hits."""
        if self._state is not RollState.CREATED:
            raise AlreadyEvaluated("roll")
        for term in self.terms:
            if isinstance(term, DiceTerm):
                term.alter(multiply, add)
        self._formula = get_formula(self.terms)
        return self

    def evaluate(
        self,
        minimize: bool = False,
        maximize: bool = False,
        cancel: typing.Optional[CancelToken] = None,
    ) -> "Roll":
        context = EvaluationContext(self.config, minimize, maximize, cancel)
        return drive(self.evaluation_steps(context), context)

    async def evaluate_async(
        self,
        minimize: bool = False,
        maximize: bool = False,
        cancel: typing.Optional[CancelToken] = None,
    ) -> "Roll":
        context = EvaluationContext(self.config, minimize, maximize, cancel)
        return await drive_async(self.evaluation_steps(context), context)

    def evaluation_steps(self, context: EvaluationContext):
        if self._replayed:
            logger.debug("%s was restored from a record, not rolling again", self)
            return self
        if self._state is RollState.FAILED:
            raise AlreadyEvaluated("roll") from self.error
        if self._state is not RollState.CREATED:
            raise AlreadyEvaluated("roll")

        snapshot = [t.to_json() for t in self.terms]
        self._state = RollState.EVALUATING
        try:
            yield from self._evaluate(context)
        except (Cancelled, GeneratorExit):
            logger.debug("evaluation of %s cancelled, restoring terms", self)
            self.terms = [RollTerm.from_data(t, self.config) for t in snapshot]
            self._state = RollState.CREATED
            raise
        except Exception as e:
            self._state = RollState.FAILED
            self.error = e
            raise
        self._state = RollState.EVALUATED
        return self

    def _evaluate(self, context: EvaluationContext):
        # intermediate terms first, each becomes the number it evaluated to
        for i, term in enumerate(self.terms):
            if not term.is_intermediate or term.evaluated:
                continue
            yield from term.evaluation_steps(context)
            logger.debug("intermediate %s evaluated to %s", term.formula, term.total)
            number = NumericTerm(term.total, options=term.options, config=self.config)
            number.carried_dice = term.dice
            number._evaluated = True
            self.terms[i] = number
            yield

        self.terms = simplify_terms(self.terms, self.config)

        for term in self.terms:
            if not term.evaluated:
                yield from term.evaluation_steps(context)
            yield

        flattened = self._flatten()
        self._total = self.safe_eval(flattened)
        self._dice = [d for t in self.terms for d in t.dice]
        logger.debug("%s = %s = %s", self.formula, flattened, self._total)

    # Serialization

    def to_json(self) -> typing.Dict[str, typing.Any]:
        return {
            "class": type(self).__name__,
            "options": dict(self.options),
            "dice": [d.to_json() for d in self._dice],
            "formula": self._formula,
            "terms": [t.to_json() for t in self.terms],
            "total": self.total,
            "evaluated": self.evaluated,
        }

    def to_json_string(self) -> str:
        return json.dumps(self.to_json())

    @classmethod
    def from_data(
        cls,
        data: typing.Mapping[str, typing.Any],
        config: typing.Optional[EngineConfig] = None,
    ) -> "Roll":
        config = EngineConfig.default() if config is None else config
        terms = [RollTerm.from_data(t, config) for t in data.get("terms") or []]
        roll = cls.from_terms(terms, options=data.get("options"), config=config)
        if data.get("formula"):
            roll._formula = data["formula"]
        if data.get("evaluated", True):
            roll._state = RollState.EVALUATED
            roll._total = data.get("total")
            if data.get("dice"):
                roll._dice = [RollTerm.from_data(d, config) for d in data["dice"]]
            else:
                roll._dice = [d for t in terms for d in t.dice]
            roll._replayed = True
        return roll

    @classmethod
    def from_json(cls, text: str, config: typing.Optional[EngineConfig] = None) -> "Roll":
        return cls.from_data(json.loads(text), config=config)

    # Results

    def get_tooltip_data(self) -> typing.List[typing.Dict[str, typing.Any]]:
        flavor = self.options.get("flavor") or ""
        return [d.get_tooltip_data(flavor) for d in self.dice if isinstance(d, DiceTerm)]

    # Helpers

    @classmethod
    def validate(cls, formula: str, data=None, config=None) -> bool:
        """Whether ``formula`` parses."""
        try:
            cls(formula, data, config=config)
        except DiceRollError:
            return False
        return True

    @staticmethod
    def safe_eval(expression: str):
        return arithmetic.safe_eval(expression)

    def __repr__(self) -> str:
        return "Roll(%s)" % self._formula
