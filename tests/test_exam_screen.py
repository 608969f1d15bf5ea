"""ExamScreen の描画と操作の転送のテスト。画面は offscreen で生成する。"""
import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest
from PyQt6.QtWidgets import QApplication

from fakes import FakeTestApi, FakeTickSource, ImmediateRunner, make_question
from models.exam_models import EXAM_COMPLETE, FinishResult, StartResult
from models.session_models import SessionFailure, SessionPhase, SessionView
from services.checkpoint_service import CheckpointService
from services.session_service import SessionLifecycleManager
from services.storage_service import MemoryStorageService
from ui.screens.exam_screen import ExamScreen
from utils.api_utils import ApiErrorKind

Q1 = make_question(101, (11, 12, 13, 14))


@pytest.fixture(scope="module")
def app():
    return QApplication.instance() or QApplication([])


@pytest.fixture
def screen(app):
    widget = ExamScreen()
    widget.show()
    yield widget
    widget.unbind()
    widget.close()
    widget.deleteLater()


def awaiting_view(**overrides):
    values = dict(
        phase=SessionPhase.AWAITING_ANSWER,
        question=Q1,
        current_index=1,
        total_questions=3,
        remaining_seconds=125,
    )
    values.update(overrides)
    return SessionView(**values)


class TestRender:
    def test_question_and_progress(self, screen):
        screen.render(awaiting_view())

        assert screen.progress_label.text() == "問題: 1 / 3"
        assert screen.timer_label.text() == "02:05"
        assert screen.question_label.text() == "Question 101"
        assert sorted(screen._option_buttons) == [11, 12, 13, 14]
        assert not screen.submit_button.isEnabled()
        assert screen.submit_button.text() == "次へ"

    def test_low_time_is_red(self, screen):
        screen.render(awaiting_view(remaining_seconds=59))
        assert screen.timer_label.text() == "00:59"
        assert "red" in screen.timer_label.styleSheet()

        screen.render(awaiting_view(remaining_seconds=60))
        assert "red" not in screen.timer_label.styleSheet()

    def test_selection_enables_submit(self, screen):
        screen.render(awaiting_view(selected_option_id=12))
        assert screen._option_buttons[12].isChecked()
        assert screen.submit_button.isEnabled()

    def test_last_question_label(self, screen):
        screen.render(awaiting_view(current_index=3))
        assert screen.submit_button.text() == "終了"

    def test_options_disabled_while_submitting(self, screen):
        screen.render(awaiting_view(phase=SessionPhase.SUBMITTING, selected_option_id=12))
        assert not any(button.isEnabled() for button in screen._option_buttons.values())
        assert not screen.submit_button.isEnabled()
        assert screen.finish_button.isEnabled()

    def test_finished_shows_result(self, screen):
        screen.render(awaiting_view(
            phase=SessionPhase.FINISHED,
            question=None,
            result=FinishResult(correct_answers=2, total_questions=3, score=66.7),
        ))
        assert "2/3" in screen.status_label.text()
        assert screen._option_buttons == {}
        assert not screen.finish_button.isEnabled()

    def test_retryable_failure_shows_reload(self, screen):
        failure = SessionFailure(ApiErrorKind.NETWORK, "通信エラー", retryable=True, checkpoint_cleared=False)
        screen.render(awaiting_view(phase=SessionPhase.FAILED, question=None, failure=failure))
        assert screen.status_label.text() == "通信エラー"
        assert screen.reload_button.isVisible()

    def test_terminal_failure_hides_reload(self, screen):
        failure = SessionFailure(ApiErrorKind.SESSION_NOT_FOUND, "見つかりません", retryable=False,
                                 checkpoint_cleared=True)
        screen.render(awaiting_view(phase=SessionPhase.FAILED, question=None, failure=failure))
        assert not screen.reload_button.isVisible()


class TestBinding:
    def make_manager(self, api):
        return SessionLifecycleManager(
            5,
            api,
            CheckpointService(MemoryStorageService()),
            ImmediateRunner(),
            FakeTickSource(),
            exit_delay_ms=0,
        )

    def test_clicks_are_forwarded_to_manager(self, screen):
        api = FakeTestApi().script("start", StartResult(
            session_id=1, duration_seconds=60, first_question=Q1, total_questions=1,
            resume=False, current_index=1, remaining_seconds=60,
        ))
        api.script("submit_answer", None).script("next_question", EXAM_COMPLETE)
        api.script("finish", FinishResult(correct_answers=1, total_questions=1, score=100))
        manager = self.make_manager(api)
        screen.bind(manager)
        manager.initialize()

        screen.option_group.button(13).click()
        assert manager.view.selected_option_id == 13
        assert screen.submit_button.isEnabled()

        screen.submit_button.click()

        assert ("submit_answer", 1, 101, 13) in api.calls
        assert manager.phase == SessionPhase.FINISHED
        assert "1/1" in screen.status_label.text()
        assert screen.exit_timer.isActive()

    def test_unbind_cancels_pending_exit(self, screen):
        api = FakeTestApi().script("start", StartResult(
            session_id=1, duration_seconds=0, first_question=Q1, total_questions=1,
            resume=False, current_index=1, remaining_seconds=0,
        ))
        api.script("finish", FinishResult(correct_answers=0, total_questions=1, score=0))
        manager = self.make_manager(api)
        screen.bind(manager)
        manager.initialize()
        assert screen.exit_timer.isActive()

        screen.unbind()

        assert not screen.exit_timer.isActive()
        assert manager.on_change is None
