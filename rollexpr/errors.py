class DiceRollError(ValueError):
    pass


class ParseError(DiceRollError):
    pass


class UnknownSymbol(DiceRollError):
    def __init__(self, path: str) -> None:
        super().__init__("unknown symbol @%s" % path)
        self.path = path


class UnknownTerm(DiceRollError):
    pass


class AlreadyEvaluated(DiceRollError):
    def __init__(self, what: str) -> None:
        super().__init__(
            "the %s has already been evaluated and is now immutable" % what
        )


class LimitExceeded(DiceRollError):
    pass


class DivideByZero(DiceRollError):
    pass


class UnevaluatedString(DiceRollError):
    def __init__(self, term: str) -> None:
        super().__init__("unresolved term '%s' requested for evaluation" % term)
        self.term = term


class InvalidArgument(DiceRollError):
    pass


class Cancelled(DiceRollError):
    pass
