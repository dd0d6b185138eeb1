"""Shared fixtures for the rollexpr test suite.

queue_config
    Builds an EngineConfig whose random source replays a fixed list of
    draws, so every die in a test has a known face. Running out of draws
    fails the test.
"""

import typing

import pytest

from rollexpr.config import EngineConfig


class QueueRandom:
    def __init__(self, values: typing.Iterable[float]) -> None:
        self.values = list(values)
        self.calls = 0

    def __call__(self) -> float:
        if not self.values:
            raise AssertionError("random source called more often than expected")
        self.calls += 1
        return self.values.pop(0)


def never_called() -> float:
    raise AssertionError("random source must not be called")


@pytest.fixture
def queue_config() -> typing.Callable[..., EngineConfig]:
    def make(*values: float, **kwargs: typing.Any) -> EngineConfig:
        return EngineConfig(random_source=QueueRandom(values), **kwargs)

    return make


@pytest.fixture
def fixed_config() -> EngineConfig:
    """A config for tests that must not roll anything."""
    return EngineConfig(random_source=never_called)
