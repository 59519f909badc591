"""Bounded polling of eventually-consistent remote state."""

import time
from typing import Callable, Optional, Tuple, Type, TypeVar

from pysns.config import PollBudget
from pysns.exception import PollTimeoutException
from pysns.logging import logger

__all__ = ["poll"]

T = TypeVar("T")


def poll(
    fetch: Callable[[], T],
    done: Callable[[T], bool],
    budget: PollBudget,
    description: str,
    tolerate: Tuple[Type[Exception], ...] = (),
    sleep_first: bool = False,
    log_every: int = 0,
    on_attempt: Optional[Callable[[int, object], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fetch`` until ``done`` accepts its result or the budget runs out.

    At most ``budget.attempts`` observations are made. A sleep of
    ``budget.interval`` separates consecutive observations, and precedes the first
    one when ``sleep_first`` is set, so the total time slept never exceeds
    ``budget.attempts * budget.interval``.

    Args:
        fetch: Observes the remote state.
        done: Success predicate on an observation.
        budget (PollBudget): Number of attempts and interval between them.
        description (str): Human readable name of the awaited condition.
        tolerate: Exception classes raised by ``fetch`` that count as "not yet".
        sleep_first (bool): Sleep before the first observation too.
        log_every (int): Log progress every this many attempts, 0 to disable.
        on_attempt: Called with the attempt number and the observation (or error).
        sleep: Sleep function, injectable for tests.

    Returns:
        The first observation accepted by ``done``.

    Raises:
        :class:`PollTimeoutException`: When no observation is accepted. It carries the
            time slept and the last observation or tolerated error.
    """
    elapsed = 0.0
    last_state: object = None
    for attempt in range(1, budget.attempts + 1):
        if attempt > 1 or sleep_first:
            sleep(budget.interval)
            elapsed += budget.interval
        try:
            value = fetch()
        except tolerate as e:
            last_state = e
        else:
            last_state = value
            if done(value):
                return value

        if on_attempt is not None:
            on_attempt(attempt, last_state)
        if log_every and attempt % log_every == 0:
            logger.info(
                f"Still waiting for {description} "
                f"({attempt}/{budget.attempts}, {elapsed:g}s elapsed)"
            )

    raise PollTimeoutException(description, budget.attempts, elapsed, last_state)
