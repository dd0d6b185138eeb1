"""Drivers for step-wise evaluation.

Terms and rolls evaluate through generators that ``yield`` at every point
where work may be suspended: between terms, between individual dice and
between modifiers. :func:`drive` runs such a generator to completion in one
go, :func:`drive_async` hands control back to the event loop at every step.
Both check the caller's :class:`CancelToken` between steps and throw
:class:`~rollexpr.errors.Cancelled` into the generator, so the evaluating
roll can restore its pre-evaluation state on the way out.
"""

import asyncio
import logging
import typing

from rollexpr.config import EngineConfig
from rollexpr.errors import Cancelled

logger = logging.getLogger(__name__)

Steps = typing.Generator[None, None, typing.Any]


class CancelToken:
    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def __repr__(self) -> str:
        return "CancelToken(cancelled=%s)" % self._cancelled


class EvaluationContext:
    def __init__(
        self,
        config: typing.Optional[EngineConfig] = None,
        minimize: bool = False,
        maximize: bool = False,
        cancel: typing.Optional[CancelToken] = None,
    ) -> None:
        if minimize and maximize:
            raise ValueError("minimize and maximize are mutually exclusive")
        self.config = EngineConfig.default() if config is None else config
        self.minimize = minimize
        self.maximize = maximize
        self.cancel = cancel

    @property
    def cancelled(self) -> bool:
        return self.cancel is not None and self.cancel.cancelled

    def draw(self) -> float:
        return self.config.random_source()


def drive(steps: Steps, context: EvaluationContext) -> typing.Any:
    try:
        while True:
            if context.cancelled:
                logger.debug("cancelling evaluation")
                steps.throw(Cancelled("evaluation was cancelled"))
            else:
                next(steps)
    except StopIteration as stop:
        return stop.value


async def drive_async(steps: Steps, context: EvaluationContext) -> typing.Any:
    try:
        while True:
            if context.cancelled:
                logger.debug("cancelling evaluation")
                steps.throw(Cancelled("evaluation was cancelled"))
            else:
                next(steps)
            try:
                await asyncio.sleep(0)
            except asyncio.CancelledError:
                try:
                    steps.throw(Cancelled("evaluation task was cancelled"))
                except (Cancelled, StopIteration):
                    pass
                raise
    except StopIteration as stop:
        return stop.value
