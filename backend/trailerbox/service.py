"""
🎬 TrailerBox - 服務入口

TrailerService 持有資料庫連線與心跳任務，組裝各元件並對外提供完整操作。
HTTP 路由層只透過此物件存取持久層，不使用任何模組層級的全域連線。
"""

import logging
from typing import List, Optional, Union

from trailerbox import config
from trailerbox.database import Database, StoreSettings
from trailerbox.heartbeat import HeartbeatMonitor
from trailerbox.models import Admin, AdminVerification, PublishedMapping, Submission
from trailerbox.security.password_hasher import PasswordHasher
from trailerbox.supervisor.admin_directory import AdminDirectory
from trailerbox.supervisor.moderation import ModerationTransaction
from trailerbox.supervisor.submission_queue import SubmissionQueue

logger = logging.getLogger("trailerbox.service")


class TrailerService:
    """預告片對照服務"""

    def __init__(
        self,
        db: Database,
        hasher: Optional[PasswordHasher] = None,
        pending_limit: int = config.PENDING_LIMIT,
        heartbeat_interval: float = config.HEARTBEAT_INTERVAL,
    ):
        self.db = db
        self.queue = SubmissionQueue(db, limit=pending_limit)
        self.moderation = ModerationTransaction(db)
        self.admins = AdminDirectory(db, hasher=hasher)
        self.heartbeat = HeartbeatMonitor(db, interval=heartbeat_interval)
        self._closed = False

    @classmethod
    def open(
        cls,
        settings: Optional[StoreSettings] = None,
        admin_username: Optional[str] = config.ADMIN_USERNAME,
        admin_password: Optional[str] = config.ADMIN_PASSWORD,
        **kwargs,
    ) -> "TrailerService":
        """
        連線、建立 Schema 並初始化超級管理員

        連線失敗時拋出 ConnectivityError（啟動中止）。
        """
        db = Database(settings)
        db.connect()
        try:
            db.ensure_schema()
            service = cls(db, **kwargs)
            service.admins.bootstrap(admin_username, admin_password)
        except Exception:
            db.close()
            raise
        return service

    async def start_heartbeat(self, interval: Optional[float] = None):
        await self.heartbeat.start(interval)

    async def close(self):
        """
        關閉服務：先停止心跳，再釋放連線

        僅第一次呼叫生效；連線從未建立時亦安全。
        """
        if self._closed:
            return
        self._closed = True
        await self.heartbeat.stop()
        self.db.close()
        logger.info("👋 TrailerService 已關閉")

    # ── 提交 ─────────────────────────────────────────────────

    def submit(self, imdb_id: str, acfun_url: str) -> int:
        return self.queue.submit(imdb_id, acfun_url)

    def pending_count(self) -> int:
        return self.queue.pending_count()

    def list_pending(self) -> List[Submission]:
        return self.queue.list_pending()

    # ── 審核 / 發佈 ──────────────────────────────────────────

    def review(self, submission_id: Union[int, str], approve: bool, reviewer: str) -> None:
        self.moderation.review(submission_id, approve, reviewer)

    def lookup(self, imdb_id: str) -> Optional[str]:
        return self.moderation.lookup(imdb_id)

    def recent_published(self, limit: int = config.RECENT_PUBLISHED_LIMIT) -> List[PublishedMapping]:
        return self.moderation.recent_published(limit)

    # ── 管理員 ───────────────────────────────────────────────

    def verify_admin(self, username: str, password: str) -> AdminVerification:
        return self.admins.verify(username, password)

    def add_secondary_admin(self, actor: str, username: str, password: str) -> None:
        self.admins.add_secondary(actor, username, password)

    def list_admins(self) -> List[Admin]:
        return self.admins.list()

    # ── 狀態 ─────────────────────────────────────────────────

    def status(self) -> dict:
        """服務健康度摘要"""
        last_beat = None
        pending = None
        if self.db.is_connected:
            try:
                last_beat = self.db.last_heartbeat()
                pending = self.pending_count()
            except Exception as e:
                logger.warning(f"⚠️ 讀取狀態失敗: {e}")
        return {
            "name": config.APP_NAME,
            "version": config.VERSION,
            "database": {
                "backend": self.db.backend,
                "connected": self.db.is_connected,
                "last_heartbeat": last_beat.isoformat() if last_beat else None,
            },
            "healthy": self.db.is_connected and self.heartbeat.is_healthy(),
            "heartbeat": self.heartbeat.get_status(),
            "pending_count": pending,
            "pending_limit": self.queue.limit,
        }
