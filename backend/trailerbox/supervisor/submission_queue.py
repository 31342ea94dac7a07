"""
🎬 TrailerBox - 提交佇列 (Submission Queue)

匿名使用者提交「IMDb ID → AcFun URL」對照提案，進入待審核佇列。

設計原則:
    - 容量上限：待審核 (pending) 最多 PENDING_LIMIT 筆。
      容量檢查與寫入為同一條條件式 INSERT，並在資料庫鎖內執行，
      併發提交不會越過上限。
    - ID 為毫秒時間戳，行程內嚴格遞增；跨行程碰撞時加入隨機偏移重試，
      超過嘗試次數則回報 DuplicateKey。
"""

import time
import random
import logging
import threading
from typing import Callable, List, Optional

from trailerbox import config
from trailerbox.database import Database, utcnow
from trailerbox.errors import CapacityExceeded, DuplicateKey, InvalidSubmission
from trailerbox.models import Submission, SubmissionStatus

logger = logging.getLogger("trailerbox.supervisor.queue")


# ═══════════════════════════════════════════════════════════════
# ID 分配器
# ═══════════════════════════════════════════════════════════════
class IdAllocator:
    """
    時間衍生的遞增 ID 產生器

    以毫秒時間戳為基礎，同一毫秒內的重複請求自動 +1，
    保證同一行程內不會產生重複 ID。
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def next_id(self, jitter_ms: int = 0) -> int:
        candidate = int(self._clock() * 1000)
        if jitter_ms:
            candidate += random.randint(1, jitter_ms)
        with self._lock:
            if candidate <= self._last:
                candidate = self._last + 1
            self._last = candidate
        return candidate


# ═══════════════════════════════════════════════════════════════
# 提交佇列
# ═══════════════════════════════════════════════════════════════
class SubmissionQueue:
    """待審核提交佇列"""

    def __init__(
        self,
        db: Database,
        limit: int = config.PENDING_LIMIT,
        id_allocator: Optional[IdAllocator] = None,
        max_attempts: int = config.SUBMIT_MAX_ID_ATTEMPTS,
    ):
        self._db = db
        self.limit = limit
        self._ids = id_allocator or IdAllocator()
        self.max_attempts = max_attempts

    # ── 建立提交 ──────────────────────────────────────────────

    def submit(self, imdb_id: str, acfun_url: str) -> int:
        """
        提交新的對照提案

        Args:
            imdb_id: IMDb ID（如 tt1234567）
            acfun_url: AcFun 影片網址

        Returns:
            新提交的 ID

        Raises:
            InvalidSubmission: 欄位為空
            CapacityExceeded: 待審核已達上限，未寫入任何資料
            DuplicateKey: 多次重新產生 ID 仍衝突
        """
        imdb_id = (imdb_id or "").strip()
        acfun_url = (acfun_url or "").strip()
        if not imdb_id or not acfun_url:
            raise InvalidSubmission()

        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            jitter = config.SUBMIT_ID_JITTER_MS if attempt > 1 else 0
            submission_id = self._ids.next_id(jitter_ms=jitter)
            try:
                inserted = self._db.execute(
                    """INSERT INTO submissions (id, imdb_id, acfun_url, submitted_at, status)
                       SELECT ?, ?, ?, ?, 'pending'
                       WHERE (SELECT COUNT(*) FROM submissions WHERE status = 'pending') < ?""",
                    (submission_id, imdb_id, acfun_url, utcnow(), self.limit),
                )
            except self._db.integrity_errors as e:
                last_error = e
                logger.warning(
                    f"⚠️ 提交 ID 衝突 | ID={submission_id} | "
                    f"嘗試 {attempt}/{self.max_attempts}，重新產生 ID"
                )
                continue

            if inserted == 0:
                logger.warning(f"🚫 待審核已達上限 ({self.limit})，拒絕提交 {imdb_id}")
                raise CapacityExceeded(
                    f"Pending submissions limit reached ({self.limit}). Try again later."
                )

            logger.info(f"📥 新提交建立 | ID={submission_id} | IMDb={imdb_id}")
            return submission_id

        logger.error(f"❌ 提交失敗：{self.max_attempts} 次 ID 皆衝突 ({last_error})")
        raise DuplicateKey(f"Submission failed after {self.max_attempts} attempts: {last_error}")

    # ── 查詢方法 ──────────────────────────────────────────────

    def pending_count(self) -> int:
        row = self._db.fetchone(
            "SELECT COUNT(*) AS count FROM submissions WHERE status = ?",
            (SubmissionStatus.PENDING.value,),
        )
        return int(row["count"]) if row else 0

    def list_pending(self) -> List[Submission]:
        """取得所有待審核提交（最早提交者優先）"""
        rows = self._db.fetchall(
            """SELECT id, imdb_id, acfun_url, submitted_at, status
               FROM submissions
               WHERE status = ?
               ORDER BY submitted_at ASC, id ASC""",
            (SubmissionStatus.PENDING.value,),
        )
        return [Submission.from_row(row) for row in rows]

    def get(self, submission_id: int) -> Optional[Submission]:
        row = self._db.fetchone(
            """SELECT id, imdb_id, acfun_url, submitted_at, status
               FROM submissions WHERE id = ?""",
            (submission_id,),
        )
        return Submission.from_row(row) if row else None
