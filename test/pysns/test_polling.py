import pytest

from pysns.config import PollBudget
from pysns.exception import PollTimeoutException, PySNSException
from pysns.polling import poll
from test.pysns.util import RecordingSleep


@pytest.mark.parametrize("attempts,interval", [(1, 1), (5, 2), (60, 10), (300, 2)])
@pytest.mark.parametrize("sleep_first", [False, True])
def test_timeout_bound(attempts, interval, sleep_first):
    sleep = RecordingSleep()
    calls = []

    def fetch():
        calls.append(1)
        return "pending"

    with pytest.raises(PollTimeoutException) as e:
        poll(
            fetch,
            lambda v: v == "done",
            PollBudget(attempts, interval),
            "test",
            sleep_first=sleep_first,
            sleep=sleep,
        )
    assert len(calls) == attempts
    assert sleep.elapsed <= attempts * interval
    assert e.value.elapsed == sleep.elapsed
    assert e.value.last_state == "pending"
    assert e.value.attempts == attempts


def test_returns_first_accepted_value():
    sleep = RecordingSleep()
    values = iter([1, 2, 3, 4])
    assert poll(lambda: next(values), lambda v: v >= 3, PollBudget(10, 5), "three", sleep=sleep) == 3
    assert sleep.calls == [5, 5]


def test_tolerated_errors_count_as_not_yet():
    sleep = RecordingSleep()
    outcomes = [PySNSException("not yet"), PySNSException("still not"), "ok"]

    def fetch():
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    assert poll(fetch, lambda v: True, PollBudget(5, 1), "ok", tolerate=(PySNSException,), sleep=sleep) == "ok"


def test_untolerated_errors_propagate():
    def fetch():
        raise ValueError("boom")

    with pytest.raises(ValueError):
        poll(fetch, lambda v: True, PollBudget(5, 1), "boom", sleep=RecordingSleep())


def test_last_error_is_reported():
    def fetch():
        raise PySNSException("unreachable")

    with pytest.raises(PollTimeoutException) as e:
        poll(fetch, lambda v: True, PollBudget(3, 1), "x", tolerate=(PySNSException,), sleep=RecordingSleep())
    assert isinstance(e.value.last_state, PySNSException)
    assert "unreachable" in str(e.value)


def test_on_attempt_callback():
    seen = []
    with pytest.raises(PollTimeoutException):
        poll(
            lambda: 0,
            lambda v: False,
            PollBudget(3, 0),
            "callback",
            on_attempt=lambda attempt, obs: seen.append((attempt, obs)),
            sleep=RecordingSleep(),
        )
    assert seen == [(1, 0), (2, 0), (3, 0)]
