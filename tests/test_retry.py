"""Tests for the bounded retry helper."""

from unittest.mock import MagicMock

import pytest

from icp_monitor.errors import FetchError, PageStructureError
from icp_monitor.retry import retry_call


def test_returns_first_success():
    func = MagicMock(return_value="ok")
    sleep = MagicMock()

    assert retry_call(func, "a", attempts=3, delay=10, sleep=sleep) == "ok"
    func.assert_called_once_with("a")
    sleep.assert_not_called()


def test_retries_then_succeeds():
    func = MagicMock(side_effect=[FetchError("down"), FetchError("down"), "ok"])
    sleep = MagicMock()

    assert retry_call(func, attempts=3, delay=10, sleep=sleep) == "ok"
    assert func.call_count == 3
    assert [c.args[0] for c in sleep.call_args_list] == [10, 10]


def test_raises_last_error_after_attempts():
    errors = [FetchError("one"), FetchError("two"), FetchError("three")]
    func = MagicMock(side_effect=errors)
    sleep = MagicMock()

    with pytest.raises(FetchError, match="three"):
        retry_call(func, attempts=3, delay=1, sleep=sleep)
    assert func.call_count == 3
    # no sleep after the final attempt
    assert sleep.call_count == 2


def test_non_retryable_error_propagates_immediately():
    func = MagicMock(side_effect=PageStructureError("no marker"))
    sleep = MagicMock()

    with pytest.raises(PageStructureError):
        retry_call(func, attempts=3, delay=1, sleep=sleep)
    func.assert_called_once()
    sleep.assert_not_called()


def test_invalid_attempts():
    with pytest.raises(ValueError):
        retry_call(MagicMock(), attempts=0)
