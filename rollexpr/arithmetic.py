import os
import typing

import lark

from rollexpr.errors import DivideByZero, ParseError

Number = typing.Union[int, float]


def _both_int(lhs: Number, rhs: Number) -> bool:
    return isinstance(lhs, int) and isinstance(rhs, int)


@lark.v_args(inline=True)
class _ArithmeticEvaluator(lark.Transformer):
    def number(self, token: lark.Token) -> Number:
        text = str(token)
        if any(c in text for c in ".eE"):
            return float(text)
        return int(text)

    def add(self, lhs: Number, rhs: Number) -> Number:
        return lhs + rhs

    def sub(self, lhs: Number, rhs: Number) -> Number:
        return lhs - rhs

    def mul(self, lhs: Number, rhs: Number) -> Number:
        return lhs * rhs

    def div(self, lhs: Number, rhs: Number) -> Number:
        if rhs == 0:
            raise DivideByZero("division by zero in '%s / %s'" % (lhs, rhs))
        if _both_int(lhs, rhs) and lhs % rhs == 0:
            return lhs // rhs
        return lhs / rhs

    def mod(self, lhs: Number, rhs: Number) -> Number:
        if rhs == 0:
            raise DivideByZero("division by zero in '%s %% %s'" % (lhs, rhs))
        # remainder takes the sign of the dividend
        if _both_int(lhs, rhs):
            remainder = abs(lhs) % abs(rhs)
            return -remainder if lhs < 0 else remainder
        lhs, rhs = float(lhs), float(rhs)
        remainder = abs(lhs) % abs(rhs)
        return -remainder if lhs < 0 else remainder

    def neg(self, value: Number) -> Number:
        return -value


_grammar_file = os.path.join(os.path.dirname(__file__), "arithmetic.lark")
with open(_grammar_file) as _f:
    _grammar = lark.Lark(_f, parser="lalr")


def safe_eval(expression: str) -> Number:
    """Evaluate a flattened arithmetic expression.

    Only numeric literals, ``+ - * / %``, unary signs and parentheses are
    accepted; anything else is a :class:`ParseError`. Integer inputs stay
    integers unless a division is inexact.
    """
    try:
        return _ArithmeticEvaluator().transform(_grammar.parse(expression))
    except lark.exceptions.VisitError as e:
        raise e.orig_exc
    except lark.exceptions.UnexpectedInput as e:
        raise ParseError("invalid arithmetic expression '%s':\n%s" % (expression, e))
