import pytest
from tenacity import RetryCallState

from sshlink.backoff import ReconnectPolicy, backoff_delay, wait_backoff_table
from sshlink.constants import BACKOFF_TABLE


@pytest.mark.parametrize(
    ("attempt", "expected"),
    [(0, 1.0), (1, 2.0), (2, 4.0), (3, 8.0), (4, 16.0), (5, 30.0), (6, 30.0), (100, 30.0)],
)
def test_backoff_delay_follows_table_then_clamps(attempt, expected):
    assert backoff_delay(attempt) == expected


def test_default_table():
    assert BACKOFF_TABLE == (1.0, 2.0, 4.0, 8.0, 16.0, 30.0)


def test_negative_attempt_rejected():
    with pytest.raises(ValueError):
        backoff_delay(-1)


def test_policy_counts_failures_and_resets():
    policy = ReconnectPolicy()
    assert policy.next_delay() == 1.0

    for _ in range(3):
        policy.record_failure()
    assert policy.attempts == 3
    assert policy.next_delay() == 8.0

    policy.reset()
    assert policy.attempts == 0
    assert policy.next_delay() == 1.0


def test_policy_with_custom_table():
    policy = ReconnectPolicy(table=(0.5, 5.0))
    policy.record_failure()
    policy.record_failure()
    policy.record_failure()
    assert policy.next_delay() == 5.0


def test_tenacity_wait_reads_policy():
    policy = ReconnectPolicy()
    wait = wait_backoff_table(policy)
    state = RetryCallState(retry_object=None, fn=None, args=(), kwargs={})

    policy.record_failure()
    assert wait(state) == 2.0
    policy.record_failure()
    assert wait(state) == 4.0
