# utils/task_runner.py
"""ネットワーク呼び出しをUIスレッドの外で実行し、結果をUIスレッドへ戻す仕組みを提供します。"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Set

from PyQt6.QtCore import QObject, QThread, pyqtSignal, pyqtSlot

from utils.api_utils import ApiError, UnexpectedError

logger = logging.getLogger(__name__)

SuccessCallback = Callable[[Any], None]
ErrorCallback = Callable[[ApiError], None]


class TaskRunner(ABC):
    """呼び出しを非同期に実行する仕組みの抽象。

    submit した呼び出しごとに、on_success か on_error のどちらか一方が
    必ず1回だけ、呼び出し元（UI）のスレッドで呼ばれます。
    """

    @abstractmethod
    def submit(self, fn: Callable[[], Any], on_success: SuccessCallback, on_error: ErrorCallback) -> None:
        ...


class ApiCallThread(QThread):
    """1回のAPI呼び出しをバックグラウンドで実行するワーカースレッド。

    UIのフリーズを防ぐため、ネットワークリクエストをバックグラウンドで実行します。
    スレッドオブジェクト自体は生成元（UI）スレッドに属するため、
    シグナル経由の結果はUIスレッドのイベントループで受け取られます。

    Signals:
        result_ready (pyqtSignal): 呼び出しが成功した際に、戻り値を送信します。
        error_occurred (pyqtSignal): 呼び出しが失敗した際に、ApiError を送信します。
    """
    result_ready = pyqtSignal(object)
    error_occurred = pyqtSignal(object)

    def __init__(
        self,
        fn: Callable[[], Any],
        on_success: SuccessCallback,
        on_error: ErrorCallback,
        parent: Optional[QObject] = None
    ) -> None:
        super().__init__(parent)
        self.fn = fn
        self.on_success = on_success
        self.on_error = on_error
        self.result_ready.connect(self._deliver_result)
        self.error_occurred.connect(self._deliver_error)

    def run(self) -> None:
        """スレッドのメイン処理。呼び出し結果をシグナルで通知する。"""
        try:
            result = self.fn()
        except ApiError as e:
            self.error_occurred.emit(e)
            return
        except Exception as e:
            logger.exception("Unexpected error in API call")
            self.error_occurred.emit(UnexpectedError(f"予期せぬエラーが発生しました: {e}"))
            return
        self.result_ready.emit(result)

    @pyqtSlot(object)
    def _deliver_result(self, result: Any) -> None:
        self.on_success(result)

    @pyqtSlot(object)
    def _deliver_error(self, error: ApiError) -> None:
        self.on_error(error)


class QtTaskRunner(TaskRunner):
    """呼び出しごとに ApiCallThread を起動する TaskRunner。"""

    def __init__(self, parent: Optional[QObject] = None) -> None:
        self.parent = parent
        self._threads: Set[ApiCallThread] = set()

    def submit(self, fn: Callable[[], Any], on_success: SuccessCallback, on_error: ErrorCallback) -> None:
        thread = ApiCallThread(fn, on_success, on_error, self.parent)
        self._threads.add(thread)
        thread.finished.connect(lambda: self._release(thread))
        thread.start()

    def _release(self, thread: ApiCallThread) -> None:
        self._threads.discard(thread)
        thread.deleteLater()

    def wait_all(self) -> None:
        """実行中のスレッドがすべて終了するまで待つ。ウィンドウを閉じる際に使用する。

        時間制限は設けません。
        各リクエストは requests のタイムアウトで必ず終了します。
        """
        for thread in list(self._threads):
            if thread.isRunning():
                thread.wait()
