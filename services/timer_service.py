# services/timer_service.py
"""
試験の残り時間を数えるカウントダウンタイマーを提供します。

タイマーは表示用のローカルカウンターであり、サーバー側の時間切れ判定とは独立しています。
1秒ごとの呼び出し元（TickSource）は注入されるため、テストでは仮想時間で進められます。
"""
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Optional

from PyQt6.QtCore import QObject, QTimer

logger = logging.getLogger(__name__)

TICK_INTERVAL_MS = 1000
LOW_TIME_THRESHOLD = 60


def format_remaining(seconds: int) -> str:
    """残り秒数を "MM:SS" 形式の文字列に変換する。"""
    seconds = max(0, seconds)
    minutes, secs = divmod(seconds, 60)
    return f"{minutes:02}:{secs:02}"


def is_low_time(seconds: int) -> bool:
    """残り時間が警告表示（赤字）の対象かどうか。"""
    return seconds < LOW_TIME_THRESHOLD


class TickSource(ABC):
    """一定間隔でコールバックを呼び出す仕組みの抽象。同時に動くのは1つだけ。"""

    @abstractmethod
    def start(self, interval_ms: int, callback: Callable[[], None]) -> None:
        """周期呼び出しを開始する。既に動いている場合は置き換える。"""

    @abstractmethod
    def stop(self) -> None:
        """周期呼び出しを止める。止まっている場合は何もしない。"""

    @property
    @abstractmethod
    def is_active(self) -> bool:
        ...


class QtTickSource(TickSource):
    """QTimer を使った TickSource。Qtのイベントループ上でコールバックを呼ぶ。"""

    def __init__(self, parent: Optional[QObject] = None) -> None:
        self.timer = QTimer(parent)
        self._callback: Optional[Callable[[], None]] = None
        self.timer.timeout.connect(self._on_timeout)

    def start(self, interval_ms: int, callback: Callable[[], None]) -> None:
        self._callback = callback
        self.timer.setInterval(interval_ms)
        self.timer.start()

    def stop(self) -> None:
        if self.timer.isActive():
            self.timer.stop()
        self._callback = None

    @property
    def is_active(self) -> bool:
        return self.timer.isActive()

    def _on_timeout(self) -> None:
        if self._callback is not None:
            self._callback()


class TimerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class CountdownTimer:
    """残り時間を1秒ずつ減らすカウントダウンタイマー。

    状態は IDLE / RUNNING / STOPPED の3つ。0秒に達すると on_expire を
    1回だけ呼び出して STOPPED になり、以後の tick は無視されます。
    """

    def __init__(
        self,
        tick_source: TickSource,
        on_tick: Callable[[int], None],
        on_expire: Callable[[], None]
    ) -> None:
        """
        Args:
            tick_source (TickSource): 1秒ごとの呼び出し元。
            on_tick (Callable[[int], None]): 減算後の残り秒数を受け取るコールバック。
            on_expire (Callable[[], None]): 0秒に達したときのコールバック。
        """
        self.tick_source = tick_source
        self.on_tick = on_tick
        self.on_expire = on_expire
        self._state = TimerState.IDLE
        self._remaining = 0

    @property
    def state(self) -> TimerState:
        return self._state

    @property
    def remaining(self) -> int:
        return self._remaining

    def arm(self, remaining_seconds: int) -> None:
        """残り秒数を設定してカウントダウンを開始する。

        動作中のカウントダウンがあれば先に止めます。0以下を渡した場合は
        直ちに期限切れとして扱います。
        """
        self.disarm()
        self._remaining = max(0, remaining_seconds)
        if self._remaining == 0:
            logger.info("Timer armed with no time left, expiring immediately")
            self.on_expire()
            return
        self._state = TimerState.RUNNING
        self.tick_source.start(TICK_INTERVAL_MS, self._handle_tick)

    def disarm(self) -> None:
        """カウントダウンを止める。何度呼んでも安全。"""
        self.tick_source.stop()
        self._state = TimerState.STOPPED

    def _handle_tick(self) -> None:
        if self._state != TimerState.RUNNING:
            return
        self._remaining -= 1
        self.on_tick(self._remaining)
        # on_tick の中で disarm された場合は期限切れを通知しない
        if self._state == TimerState.RUNNING and self._remaining <= 0:
            self.disarm()
            logger.info("Timer expired")
            self.on_expire()
