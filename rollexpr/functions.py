import math
import typing

from rollexpr.errors import InvalidArgument

Number = typing.Union[int, float]


def _integral(value: float) -> Number:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


class MathFunction:
    """A named numeric function callable from a formula, e.g. ``floor(7/2)``."""

    arity: typing.Optional[int] = 1

    @classmethod
    def name(cls) -> str:
        raise NotImplementedError

    @classmethod
    def description(cls) -> str:
        return ""

    @classmethod
    def help(cls) -> str:
        return "No help text available for this function."

    def op(self, *args: Number) -> Number:
        raise NotImplementedError

    def __call__(self, *args: Number) -> Number:
        if self.arity is not None and len(args) != self.arity:
            raise InvalidArgument(
                "'%s' expected %s arguments, got %s" % (self.name(), self.arity, len(args))
            )
        if self.arity is None and len(args) == 0:
            raise InvalidArgument("'%s' expected at least 1 argument" % self.name())
        try:
            result = self.op(*args)
        except (ValueError, OverflowError) as e:
            raise InvalidArgument("%s%s: %s" % (self.name(), args, e))
        if isinstance(result, float) and not math.isfinite(result):
            raise InvalidArgument("%s%s is not a finite number" % (self.name(), args))
        return result

    def __repr__(self) -> str:
        return self.name()


class Floor(MathFunction):
    @classmethod
    def name(cls) -> str:
        return "floor"

    @classmethod
    def description(cls) -> str:
        return "round down"

    @classmethod
    def help(cls) -> str:
        return """floor(<x>)

Arguments:
    x - A number.

Result:
    The largest integer less than or equal to x.

Examples:
    floor(7/2)
    floor(1d6/2)
"""

    def op(self, x: Number) -> Number:
        return math.floor(x)


class Ceil(MathFunction):
    @classmethod
    def name(cls) -> str:
        return "ceil"

    @classmethod
    def description(cls) -> str:
        return "round up"

    @classmethod
    def help(cls) -> str:
        return """ceil(<x>)

Arguments:
    x - A number.

Result:
    The smallest integer greater than or equal to x.

Examples:
    ceil(7/2)
    ceil(1d6/2)
"""

    def op(self, x: Number) -> Number:
        return math.ceil(x)


class Round(MathFunction):
    @classmethod
    def name(cls) -> str:
        return "round"

    @classmethod
    def description(cls) -> str:
        return "round to nearest, halves up"

    @classmethod
    def help(cls) -> str:
        return """round(<x>)

Arguments:
    x - A number.

Result:
    x rounded to the nearest integer. Halves
    always round up, so round(2.5) is 3 and
    round(-2.5) is -2.

Examples:
    round(5/2)
    round(1d10/3)
"""

    def op(self, x: Number) -> Number:
        return math.floor(x + 0.5)


class Trunc(MathFunction):
    @classmethod
    def name(cls) -> str:
        return "trunc"

    @classmethod
    def description(cls) -> str:
        return "drop the fractional part"

    def op(self, x: Number) -> Number:
        return math.trunc(x)


class Abs(MathFunction):
    @classmethod
    def name(cls) -> str:
        return "abs"

    @classmethod
    def description(cls) -> str:
        return "absolute value"

    @classmethod
    def help(cls) -> str:
        return """abs(<x>)

Arguments:
    x - A number.

Result:
    The absolute value of x.

Examples:
    abs(1d6 - 1d6)
"""

    def op(self, x: Number) -> Number:
        return abs(x)


class Sign(MathFunction):
    @classmethod
    def name(cls) -> str:
        return "sign"

    @classmethod
    def description(cls) -> str:
        return "-1, 0 or 1"

    def op(self, x: Number) -> Number:
        return (x > 0) - (x < 0)


class Sqrt(MathFunction):
    @classmethod
    def name(cls) -> str:
        return "sqrt"

    @classmethod
    def description(cls) -> str:
        return "square root"

    def op(self, x: Number) -> Number:
        return _integral(math.sqrt(x))


class Cbrt(MathFunction):
    @classmethod
    def name(cls) -> str:
        return "cbrt"

    @classmethod
    def description(cls) -> str:
        return "cube root"

    def op(self, x: Number) -> Number:
        root = round(abs(x) ** (1 / 3), 12)
        return _integral(-root if x < 0 else root)


class Exp(MathFunction):
    @classmethod
    def name(cls) -> str:
        return "exp"

    @classmethod
    def description(cls) -> str:
        return "e raised to a power"

    def op(self, x: Number) -> Number:
        return math.exp(x)


class Log(MathFunction):
    @classmethod
    def name(cls) -> str:
        return "log"

    @classmethod
    def description(cls) -> str:
        return "natural logarithm"

    def op(self, x: Number) -> Number:
        return math.log(x)


class Log2(MathFunction):
    @classmethod
    def name(cls) -> str:
        return "log2"

    @classmethod
    def description(cls) -> str:
        return "base 2 logarithm"

    def op(self, x: Number) -> Number:
        return _integral(math.log2(x))


class Log10(MathFunction):
    @classmethod
    def name(cls) -> str:
        return "log10"

    @classmethod
    def description(cls) -> str:
        return "base 10 logarithm"

    def op(self, x: Number) -> Number:
        return _integral(math.log10(x))


class Pow(MathFunction):
    arity = 2

    @classmethod
    def name(cls) -> str:
        return "pow"

    @classmethod
    def description(cls) -> str:
        return "raise to a power"

    @classmethod
    def help(cls) -> str:
        return """pow(<x>, <y>)

Arguments:
    x - The base.
    y - The exponent.

Result:
    x raised to the power y.

Examples:
    pow(2, 1d4)
"""

    def op(self, x: Number, y: Number) -> Number:
        return x**y if isinstance(x, int) and isinstance(y, int) and y >= 0 else math.pow(x, y)


class Min(MathFunction):
    arity = None

    @classmethod
    def name(cls) -> str:
        return "min"

    @classmethod
    def description(cls) -> str:
        return "smallest argument"

    @classmethod
    def help(cls) -> str:
        return """min(<x>, ...)

Arguments:
    x - One or more numbers.

Result:
    The smallest of the arguments.

Examples:
    min(1d20, 1d20)
    min(@abilities.str, 10)
"""

    def op(self, *args: Number) -> Number:
        return min(args)


class Max(MathFunction):
    arity = None

    @classmethod
    def name(cls) -> str:
        return "max"

    @classmethod
    def description(cls) -> str:
        return "largest argument"

    @classmethod
    def help(cls) -> str:
        return """max(<x>, ...)

Arguments:
    x - One or more numbers.

Result:
    The largest of the arguments.

Examples:
    max(1d20, 1d20)
    max(1d6 - 2, 0)
"""

    def op(self, *args: Number) -> Number:
        return max(args)


class Hypot(MathFunction):
    arity = None

    @classmethod
    def name(cls) -> str:
        return "hypot"

    @classmethod
    def description(cls) -> str:
        return "square root of the sum of squares"

    def op(self, *args: Number) -> Number:
        return _integral(math.hypot(*args))


NAMES_TO_FUNCTIONS: typing.Dict[str, typing.Type[MathFunction]] = {
    fn.name(): fn
    for fn in (
        Floor,
        Ceil,
        Round,
        Trunc,
        Abs,
        Sign,
        Sqrt,
        Cbrt,
        Exp,
        Log,
        Log2,
        Log10,
        Pow,
        Min,
        Max,
        Hypot,
    )
}


def default_math_functions(
    names: typing.Optional[typing.Iterable[str]] = None,
) -> typing.Dict[str, MathFunction]:
    if names is None:
        names = NAMES_TO_FUNCTIONS.keys()
    result = {}
    for name in names:
        name = name.lower()
        if name not in NAMES_TO_FUNCTIONS:
            raise InvalidArgument("unknown function %s" % name)
        result[name] = NAMES_TO_FUNCTIONS[name]()
    return result
