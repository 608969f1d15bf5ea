# ui/screens/exam_screen.py
"""
受験画面のUIコンポーネントを提供します。

ExamScreen は SessionLifecycleManager の状態（SessionView）を描画し、
選択肢の選択・解答送信・終了の操作をマネージャーへ伝えるだけの薄い層です。
"""
from typing import Dict, Optional

from PyQt6.QtCore import QTimer, pyqtSignal
from PyQt6.QtWidgets import (
    QButtonGroup, QHBoxLayout, QLabel, QMessageBox, QPushButton,
    QRadioButton, QVBoxLayout, QWidget
)

from models.exam_models import Question
from models.session_models import SessionPhase, SessionView
from services.session_service import SessionLifecycleManager
from services.timer_service import format_remaining, is_low_time

_BUSY_TEXT = {
    SessionPhase.UNINITIALIZED: "テストを読み込んでいます...",
    SessionPhase.INITIALIZING: "テストを読み込んでいます...",
    SessionPhase.SUBMITTING: "解答を送信しています...",
    SessionPhase.EXAM_COMPLETE: "すべての問題に解答しました。",
    SessionPhase.FINISHING: "テストを終了しています...",
}


class ExamScreen(QWidget):
    """
    受験画面のメインウィジェット。

    上部に問題番号と残り時間、中央に問題文と選択肢、下部に操作ボタンを配置します。

    Signals:
        exit_requested (pyqtSignal): テスト一覧へ戻るべきときに送信されます。
    """
    exit_requested = pyqtSignal()

    def __init__(self, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.manager: Optional[SessionLifecycleManager] = None
        self._rendered_question_id: Optional[int] = None
        self._option_buttons: Dict[int, QRadioButton] = {}

        # --- UI要素の型定義 ---
        self.progress_label: QLabel
        self.timer_label: QLabel
        self.status_label: QLabel
        self.question_label: QLabel
        self.options_layout: QVBoxLayout
        self.option_group: QButtonGroup
        self.finish_button: QPushButton
        self.submit_button: QPushButton
        self.reload_button: QPushButton

        self.exit_timer = QTimer(self)
        self.exit_timer.setSingleShot(True)
        self.exit_timer.timeout.connect(self.exit_requested.emit)

        self.setup_ui()

    def setup_ui(self) -> None:
        """UIの構築とレイアウト設定を行う。"""
        layout = QVBoxLayout(self)

        header = QHBoxLayout()
        self.progress_label = QLabel()
        self.progress_label.setStyleSheet("font-size: 14pt; font-weight: bold;")
        self.timer_label = QLabel()
        self.timer_label.setStyleSheet("font-size: 16pt; font-weight: bold;")
        header.addWidget(self.progress_label)
        header.addStretch()
        header.addWidget(self.timer_label)
        layout.addLayout(header)

        self.status_label = QLabel()
        self.status_label.setWordWrap(True)
        layout.addWidget(self.status_label)

        self.question_label = QLabel()
        self.question_label.setWordWrap(True)
        self.question_label.setStyleSheet("font-size: 13pt; font-weight: bold;")
        layout.addWidget(self.question_label)

        self.options_layout = QVBoxLayout()
        layout.addLayout(self.options_layout)
        self.option_group = QButtonGroup(self)
        self.option_group.setExclusive(True)
        self.option_group.idClicked.connect(self._on_option_clicked)
        layout.addStretch()

        buttons = QHBoxLayout()
        self.reload_button = QPushButton("再読み込み")
        self.reload_button.clicked.connect(self._on_reload_clicked)
        self.finish_button = QPushButton("終了")
        self.finish_button.clicked.connect(self._on_finish_clicked)
        self.submit_button = QPushButton("次へ")
        self.submit_button.clicked.connect(self._on_submit_clicked)
        buttons.addWidget(self.reload_button)
        buttons.addStretch()
        buttons.addWidget(self.finish_button)
        buttons.addWidget(self.submit_button)
        layout.addLayout(buttons)

    def bind(self, manager: SessionLifecycleManager) -> None:
        """表示するマネージャーを設定する。マネージャーの通知先はこの画面に向ける。"""
        self.manager = manager
        manager.on_change = self.render
        manager.on_exit = self._schedule_exit
        self._rendered_question_id = None
        self.render(manager.view)

    def unbind(self) -> None:
        """マネージャーとの接続を解除し、予約済みの画面遷移を取り消す。"""
        self.exit_timer.stop()
        if self.manager is not None:
            self.manager.on_change = None
            self.manager.on_exit = None
        self.manager = None

    def _schedule_exit(self, delay_ms: int) -> None:
        self.exit_timer.start(max(0, delay_ms))

    # ---- 描画 ----

    def render(self, view: SessionView) -> None:
        """SessionView を画面に反映する。状態が変わるたびに呼ばれる。"""
        self.progress_label.setText(f"問題: {view.current_index} / {view.total_questions}")
        self.timer_label.setText(format_remaining(view.remaining_seconds))
        color = "red" if is_low_time(view.remaining_seconds) else "black"
        self.timer_label.setStyleSheet(f"font-size: 16pt; font-weight: bold; color: {color};")

        question = view.question if view.phase in (SessionPhase.AWAITING_ANSWER, SessionPhase.SUBMITTING) else None
        self._render_question(question, view.selected_option_id)

        awaiting = view.phase == SessionPhase.AWAITING_ANSWER
        for button in self._option_buttons.values():
            button.setEnabled(awaiting)
        self.submit_button.setEnabled(view.can_submit)
        self.submit_button.setText("終了" if view.is_last_question else "次へ")
        self.finish_button.setEnabled(view.phase in (SessionPhase.AWAITING_ANSWER, SessionPhase.SUBMITTING))
        self.reload_button.setVisible(view.failure is not None and view.failure.retryable)

        self._render_status(view)

    def _render_question(self, question: Optional[Question], selected_option_id: Optional[int]) -> None:
        question_id = question.id if question else None
        if question_id != self._rendered_question_id:
            self._clear_options()
            self._rendered_question_id = question_id
            if question is None:
                self.question_label.clear()
                return
            self.question_label.setText(question.text)
            for option in question.options:
                button = QRadioButton(f"{option.label}. {option.text}")
                self.option_group.addButton(button, option.id)
                self.options_layout.addWidget(button)
                self._option_buttons[option.id] = button
        if selected_option_id is not None and selected_option_id in self._option_buttons:
            self._option_buttons[selected_option_id].setChecked(True)

    def _clear_options(self) -> None:
        for button in self._option_buttons.values():
            self.option_group.removeButton(button)
            self.options_layout.removeWidget(button)
            button.deleteLater()
        self._option_buttons = {}

    def _render_status(self, view: SessionView) -> None:
        if view.failure is not None:
            self.status_label.setStyleSheet("color: #d32f2f;")
            self.status_label.setText(view.failure.message)
        elif view.phase == SessionPhase.FINISHED:
            self.status_label.setStyleSheet("color: #2e7d32; font-weight: bold;")
            if view.result is not None:
                self.status_label.setText(f"{view.result.summary()}（テスト一覧に戻ります...）")
            else:
                self.status_label.setText("テストは終了しました。（テスト一覧に戻ります...）")
        else:
            self.status_label.setStyleSheet("")
            self.status_label.setText(_BUSY_TEXT.get(view.phase, ""))

    # ---- 操作 ----

    def _on_option_clicked(self, option_id: int) -> None:
        if self.manager is not None:
            self.manager.select_option(option_id)

    def _on_submit_clicked(self) -> None:
        if self.manager is not None:
            self.manager.submit()

    def _on_finish_clicked(self) -> None:
        if self.manager is None:
            return
        reply = QMessageBox.question(
            self,
            "テストの終了",
            "テストを終了しますか？終了後は再開できません。",
            QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No,
            QMessageBox.StandardButton.No,
        )
        # 確認中に時間切れになっていれば request_finish は何もしない
        if reply == QMessageBox.StandardButton.Yes and self.manager is not None:
            self.manager.request_finish()

    def _on_reload_clicked(self) -> None:
        if self.manager is not None:
            self.manager.reload()
