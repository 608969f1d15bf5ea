"""QtTaskRunner のテスト。スレッドの待機とUIスレッドへの結果の受け渡しを確認する。"""
import os
import time

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest
from PyQt6.QtWidgets import QApplication

from utils.api_utils import NetworkError, UnexpectedError
from utils.task_runner import QtTaskRunner


@pytest.fixture(scope="module")
def app():
    return QApplication.instance() or QApplication([])


def slow_call(seconds, value):
    def call():
        time.sleep(seconds)
        return value
    return call


def failing_call(error):
    def call():
        raise error
    return call


class TestQtTaskRunner:
    def test_wait_all_outlasts_slow_requests(self, app):
        runner = QtTaskRunner()
        results = []
        runner.submit(slow_call(0.5, "late"), results.append, results.append)
        runner.submit(slow_call(0.1, "early"), results.append, results.append)

        runner.wait_all()

        assert not any(thread.isRunning() for thread in runner._threads)
        app.processEvents()
        assert sorted(results) == ["early", "late"]

    def test_api_error_is_delivered_to_error_callback(self, app):
        runner = QtTaskRunner()
        successes, errors = [], []
        error = NetworkError("refused")
        runner.submit(failing_call(error), successes.append, errors.append)

        runner.wait_all()
        app.processEvents()

        assert successes == []
        assert errors == [error]

    def test_other_exceptions_become_unexpected_errors(self, app):
        runner = QtTaskRunner()
        errors = []
        runner.submit(failing_call(RuntimeError("boom")), errors.append, errors.append)

        runner.wait_all()
        app.processEvents()

        assert len(errors) == 1
        assert isinstance(errors[0], UnexpectedError)
