"""
🎬 TrailerBox - 審核交易 (Moderation Transaction)

審核者對待審核提交做出決定：
    PENDING → APPROVED  (核准，並發佈到 trailers)
    PENDING → REJECTED  (拒絕，不發佈)

狀態更新與發佈在同一個交易中完成，任何步驟失敗都會整體回滾。
「僅在仍為 pending 時更新」的條件式 UPDATE 同時是防重複審核的守門條件，
兩個審核者同時處理同一筆提交時只有一方會成功。
"""

import logging
from typing import List, Optional, Union

from trailerbox import config
from trailerbox.database import Database, utcnow
from trailerbox.errors import NotFound
from trailerbox.models import PublishedMapping, SubmissionStatus

logger = logging.getLogger("trailerbox.supervisor.moderation")


class ModerationTransaction:
    """審核交易與已發佈對照的讀取路徑"""

    def __init__(self, db: Database):
        self._db = db

    # ── 審核 ─────────────────────────────────────────────────

    def review(self, submission_id: Union[int, str], approve: bool, reviewer: str) -> None:
        """
        審核一筆提交

        Args:
            submission_id: 提交 ID（表單傳入的字串亦可）
            approve: True = 核准並發佈, False = 拒絕
            reviewer: 審核者帳號

        Raises:
            NotFound: ID 不存在或已審核過，兩張表皆未變動
        """
        sid = self._coerce_id(submission_id)
        status = SubmissionStatus.APPROVED if approve else SubmissionStatus.REJECTED

        with self._db.transaction() as cur:
            matched = cur.execute(
                "UPDATE submissions SET status = ? WHERE id = ? AND status = ?",
                (status.value, sid, SubmissionStatus.PENDING.value),
            )
            if matched == 0:
                raise NotFound(f"Submission {submission_id} not found or already reviewed")

            if approve:
                row = cur.fetchone(
                    "SELECT imdb_id, acfun_url FROM submissions WHERE id = ?",
                    (sid,),
                )
                cur.execute(
                    """INSERT INTO trailers (imdb_id, acfun_url, approved_at, reviewer)
                       VALUES (?, ?, ?, ?)
                       ON CONFLICT (imdb_id) DO UPDATE SET
                           acfun_url = excluded.acfun_url,
                           approved_at = excluded.approved_at,
                           reviewer = excluded.reviewer""",
                    (row["imdb_id"], row["acfun_url"], utcnow(), reviewer),
                )

        logger.info(
            f"📋 提交審核完成 | ID={sid} | Status={status.value} | Reviewer={reviewer}"
        )

    @staticmethod
    def _coerce_id(submission_id: Union[int, str]) -> int:
        """僅接受整數或純數字字串（表單欄位）"""
        if isinstance(submission_id, int) and not isinstance(submission_id, bool):
            return submission_id
        if isinstance(submission_id, str):
            text = submission_id.strip()
            if text.isascii() and text.isdigit():
                return int(text)
        raise NotFound(f"Submission {submission_id} not found or already reviewed")

    # ── 已發佈對照查詢 ────────────────────────────────────────

    def lookup(self, imdb_id: str) -> Optional[str]:
        """以 IMDb ID 取得已發佈的 AcFun URL，無則回傳 None"""
        row = self._db.fetchone(
            "SELECT acfun_url FROM trailers WHERE imdb_id = ?",
            (imdb_id,),
        )
        return row["acfun_url"] if row else None

    def get_published(self, imdb_id: str) -> Optional[PublishedMapping]:
        row = self._db.fetchone(
            "SELECT imdb_id, acfun_url, approved_at, reviewer FROM trailers WHERE imdb_id = ?",
            (imdb_id,),
        )
        return PublishedMapping.from_row(row) if row else None

    def recent_published(self, limit: int = config.RECENT_PUBLISHED_LIMIT) -> List[PublishedMapping]:
        """取得最近通過審核的對照（最新者優先）"""
        rows = self._db.fetchall(
            """SELECT imdb_id, acfun_url, approved_at, reviewer
               FROM trailers
               ORDER BY approved_at DESC LIMIT ?""",
            (max(0, int(limit)),),
        )
        return [PublishedMapping.from_row(row) for row in rows]
