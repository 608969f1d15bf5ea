# ui/main_window.py
import logging
from typing import Optional

from PyQt6.QtGui import QCloseEvent
from PyQt6.QtWidgets import QMainWindow, QMessageBox, QStackedWidget

from models.session_models import SessionPhase
from services.api_service import TestApiService
from services.checkpoint_service import CheckpointService
from services.session_service import SessionLifecycleManager
from services.storage_service import StorageService
from services.timer_service import QtTickSource
from ui.screens.exam_screen import ExamScreen
from ui.screens.test_list_screen import TestListScreen
from utils.config import settings
from utils.task_runner import QtTaskRunner

logger = logging.getLogger(__name__)


class MainWindow(QMainWindow):
    """
    アプリケーションのメインウィンドウ。

    テスト一覧画面と受験画面を QStackedWidget で切り替えます。
    受験1回につき SessionLifecycleManager を1つ生成し、画面を離れる際に破棄します。
    """
    def __init__(self) -> None:
        super().__init__()
        self.setWindowTitle("CBTテストシステム")
        self.setGeometry(100, 100, 900, 650)

        self.storage_service = StorageService(settings.DATA_DIR)
        self.checkpoint_service = CheckpointService(self.storage_service)
        self.api_service = TestApiService(
            settings.API_BASE_URL,
            token_provider=self.get_access_token,
            timeout=settings.REQUEST_TIMEOUT,
        )
        self.runner = QtTaskRunner(self)
        self.tick_source = QtTickSource(self)
        self.manager: Optional[SessionLifecycleManager] = None

        self.stack = QStackedWidget()
        self.test_list_screen = TestListScreen(self.api_service, self.runner)
        self.test_list_screen.start_requested.connect(self.open_exam)
        self.exam_screen = ExamScreen()
        self.exam_screen.exit_requested.connect(self.close_exam)
        self.stack.addWidget(self.test_list_screen)
        self.stack.addWidget(self.exam_screen)
        self.setCentralWidget(self.stack)

        self.test_list_screen.refresh()

    def get_access_token(self) -> Optional[str]:
        """ストレージの "access" を優先し、無ければ設定のトークンを返す。"""
        return self.storage_service.get_item("access") or settings.ACCESS_TOKEN

    def open_exam(self, test_id: int, session_id: int = 0) -> None:
        """受験画面へ切り替え、セッションを初期化する。"""
        self.close_exam(show_list=False)
        logger.info("Opening test %s (session %s)", test_id, session_id or "-")
        self.manager = SessionLifecycleManager(
            test_id,
            self.api_service,
            self.checkpoint_service,
            self.runner,
            self.tick_source,
            exit_delay_ms=settings.REDIRECT_DELAY_MS,
        )
        self.exam_screen.bind(self.manager)
        self.stack.setCurrentWidget(self.exam_screen)
        self.manager.initialize(session_id or None)

    def close_exam(self, show_list: bool = True) -> None:
        """現在のセッションを破棄し、テスト一覧へ戻る。"""
        if self.manager is not None:
            self.exam_screen.unbind()
            self.manager.dispose()
            self.manager = None
        if show_list:
            self.stack.setCurrentWidget(self.test_list_screen)
            self.test_list_screen.refresh()

    def is_exam_running(self) -> bool:
        return self.manager is not None and not self.manager.phase.is_terminal \
            and self.manager.phase != SessionPhase.UNINITIALIZED

    def closeEvent(self, event: QCloseEvent) -> None:
        """受験中であれば確認してからウィンドウを閉じる。"""
        if self.is_exam_running():
            reply = QMessageBox.question(
                self,
                "確認",
                "受験中です。アプリケーションを終了しますか？\n（次回起動時に続きから再開できます）",
                QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No,
                QMessageBox.StandardButton.No,
            )
            if reply != QMessageBox.StandardButton.Yes:
                event.ignore()
                return
        self.close_exam(show_list=False)
        self.runner.wait_all()
        event.accept()
