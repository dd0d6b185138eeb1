import os
import random
import typing

import yaml

from rollexpr.errors import InvalidArgument
from rollexpr.functions import MathFunction, default_math_functions

RandomSource = typing.Callable[[], float]

DEFAULT_MAX_DICE = 999

DEFAULT_SETTINGS_FILE = os.path.join(os.path.dirname(__file__), "settings.default.yaml")


def default_dice_kinds() -> typing.Dict[str, type]:
    from rollexpr.dice import Coin, Die, FateDie

    return {cls.DENOMINATION: cls for cls in (Die, Coin, FateDie)}


class EngineConfig:
    """Everything an engine needs that is not part of a formula.

    Dice denominations, math functions, the random source and the dice cap
    live here instead of in module globals, so two engines with different
    settings can coexist.
    """

    def __init__(
        self,
        dice_kinds: typing.Optional[typing.Mapping[str, type]] = None,
        math_functions: typing.Optional[
            typing.Mapping[str, typing.Callable[..., typing.Any]]
        ] = None,
        random_source: typing.Optional[RandomSource] = None,
        max_dice: int = DEFAULT_MAX_DICE,
    ) -> None:
        self.dice_kinds: typing.Dict[str, type] = dict(
            default_dice_kinds() if dice_kinds is None else dice_kinds
        )
        self.math_functions: typing.Dict[str, typing.Callable[..., typing.Any]] = dict(
            default_math_functions() if math_functions is None else math_functions
        )
        self.random_source: RandomSource = (
            random.random if random_source is None else random_source
        )
        if not isinstance(max_dice, int) or max_dice < 0:
            raise InvalidArgument("max_dice must be a non-negative integer, got %r" % max_dice)
        self.max_dice = max_dice
        if "d" not in self.dice_kinds:
            raise InvalidArgument("the 'd' denomination must be registered")

    @classmethod
    def from_settings(
        cls,
        settings: typing.Optional[typing.Mapping[str, typing.Any]],
        random_source: typing.Optional[RandomSource] = None,
    ) -> "EngineConfig":
        settings = settings or {}
        names = settings.get("math_functions")
        if random_source is None and settings.get("seed") is not None:
            random_source = random.Random(settings["seed"]).random
        return cls(
            math_functions=default_math_functions(names),
            random_source=random_source,
            max_dice=settings.get("max_dice", DEFAULT_MAX_DICE),
        )

    @classmethod
    def from_yaml(
        cls, path: str, random_source: typing.Optional[RandomSource] = None
    ) -> "EngineConfig":
        with open(path) as f:
            return cls.from_settings(yaml.safe_load(f), random_source=random_source)

    @classmethod
    def default(cls) -> "EngineConfig":
        return cls()

    def denomination(self, denomination: str) -> typing.Optional[type]:
        if denomination.isdigit():
            return self.dice_kinds["d"]
        return self.dice_kinds.get(denomination.lower())

    def math_function(self, name: str) -> typing.Callable[..., typing.Any]:
        fn = self.math_functions.get(name)
        if fn is None:
            raise InvalidArgument("unknown function %s" % name)
        return fn

    def function_help(self, name: str) -> str:
        fn = self.math_function(name)
        if isinstance(fn, MathFunction):
            return fn.help()
        return fn.__doc__ or "No help text available for this function."

    def __repr__(self) -> str:
        return "EngineConfig(dice_kinds=%s, math_functions=%s, max_dice=%s)" % (
            sorted(self.dice_kinds),
            sorted(self.math_functions),
            self.max_dice,
        )
