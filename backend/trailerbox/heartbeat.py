"""
🎬 TrailerBox - 資料庫心跳監控

定期寫入 system_heartbeat，讓閒置的雲端資料庫保持活躍並及早發現斷線。
心跳失敗只會降級本元件並以指數退避重試，不影響前台請求。

狀態流轉:
    READY → RUNNING ⇄ DEGRADED → STOPPED → READY (重新啟動)
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Optional

from trailerbox import config
from trailerbox.database import Database

logger = logging.getLogger("trailerbox.heartbeat")


class HeartbeatState(Enum):
    READY = "READY"         # 已建立，尚未啟動
    RUNNING = "RUNNING"     # 心跳正常
    DEGRADED = "DEGRADED"   # 心跳失敗，退避重試中
    STOPPED = "STOPPED"

    def __str__(self):
        return self.value


class HeartbeatMonitor:
    """
    心跳監控器

    start() 立即送出一次心跳，之後每 interval 秒一次；
    失敗時改以 retry_base、retry_base*2 … (上限 interval) 的間隔重試。
    """

    def __init__(
        self,
        db: Database,
        interval: float = config.HEARTBEAT_INTERVAL,
        retry_base: float = config.HEARTBEAT_RETRY_BASE,
    ):
        self._db = db
        self.interval = interval
        self.retry_base = retry_base
        self._task: Optional[asyncio.Task] = None
        self._failures = 0
        self.beats = 0
        self._state = HeartbeatState.READY
        self._state_changed_at = time.time()
        self._error: Optional[str] = None

    @property
    def state(self) -> HeartbeatState:
        return self._state

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    def is_healthy(self) -> bool:
        return self._state == HeartbeatState.RUNNING

    def _set_state(self, new_state: HeartbeatState, reason: str = ""):
        if new_state == self._state:
            return
        old, self._state = self._state, new_state
        self._state_changed_at = time.time()
        self._error = reason if new_state == HeartbeatState.DEGRADED else None
        logger.info(f"🔄 [heartbeat] {old} → {new_state}" + (f" ({reason})" if reason else ""))

    async def start(self, interval: Optional[float] = None):
        """啟動心跳迴圈（已啟動時為 no-op）"""
        if self.running:
            return
        if interval is not None:
            self.interval = interval

        self._task = asyncio.create_task(self._heartbeat_loop())
        self._set_state(HeartbeatState.RUNNING)
        logger.info(f"💓 心跳排程已啟動 (間隔: {self.interval}s)")

    async def stop(self):
        """停止心跳（可重複呼叫，未啟動時亦安全）"""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.info("🛑 心跳排程已停止")
        self._set_state(HeartbeatState.STOPPED)

    def next_delay(self) -> float:
        """依連續失敗次數計算下次等待秒數"""
        if self._failures == 0:
            return self.interval
        backoff = self.retry_base * (2 ** (self._failures - 1))
        return min(backoff, self.interval)

    async def beat_once(self) -> bool:
        """送出一次心跳並更新狀態"""
        ok = await asyncio.to_thread(self._db.heartbeat)
        if ok:
            self.beats += 1
            if self._failures:
                logger.info(f"✅ 心跳恢復 (先前連續失敗 {self._failures} 次)")
            self._failures = 0
            self._set_state(HeartbeatState.RUNNING)
        else:
            self._failures += 1
            self._set_state(HeartbeatState.DEGRADED, f"心跳連續失敗 {self._failures} 次")
        return ok

    async def _heartbeat_loop(self):
        while True:
            try:
                await self.beat_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Database.heartbeat 自身不拋例外，這裡只攔截意外狀況
                self._failures += 1
                self._set_state(HeartbeatState.DEGRADED, str(e))
                logger.error(f"❌ 心跳迴圈錯誤: {e}", exc_info=True)

            delay = self.next_delay()
            logger.debug(f"心跳進入休眠 {delay:.1f} 秒")
            await asyncio.sleep(delay)

    def get_status(self) -> dict:
        """狀態摘要（供 /api/status 顯示）"""
        return {
            "name": "heartbeat",
            "state": self._state.value,
            "since": self._state_changed_at,
            "error": self._error,
            "interval": self.interval,
            "beats": self.beats,
            "consecutive_failures": self._failures,
        }
