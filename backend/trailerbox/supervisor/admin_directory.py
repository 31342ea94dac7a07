"""
🎬 TrailerBox - 管理員目錄 (Admin Directory)

管理員帳號的儲存、登入驗證與權限分級：
    super:     啟動時由環境變數建立，可新增二級管理員
    secondary: 僅可審核提交

不提供刪除或降級路徑。
"""

import logging
from typing import List, Optional

from trailerbox.database import Database, utcnow
from trailerbox.errors import Conflict, Forbidden
from trailerbox.models import Admin, AdminRole, AdminVerification
from trailerbox.security.password_hasher import PasswordHasher, password_hasher

logger = logging.getLogger("trailerbox.supervisor.admins")


class AdminDirectory:
    """管理員目錄"""

    def __init__(self, db: Database, hasher: Optional[PasswordHasher] = None):
        self._db = db
        self._hasher = hasher or password_hasher

    # ── 初始化超級管理員 ──────────────────────────────────────

    def bootstrap(self, username: Optional[str], password: Optional[str]) -> bool:
        """
        建立初始超級管理員（已存在時不動作）

        Returns:
            True = 本次新建, False = 已存在或未設定
        """
        if not username or not password:
            logger.warning("⚠️ ADMIN_USERNAME / ADMIN_PASSWORD 未設定，略過建立初始管理員")
            return False

        created = self._db.execute(
            """INSERT INTO admins (username, password_hash, role, created_at)
               VALUES (?, ?, ?, ?)
               ON CONFLICT (username) DO NOTHING""",
            (username, self._hasher.hash(password), AdminRole.SUPER.value, utcnow()),
        )
        if created:
            logger.info(f"👑 超級管理員 \"{username}\" 已建立")
        else:
            logger.info(f"👑 超級管理員 \"{username}\" 已存在")
        return bool(created)

    # ── 登入驗證 ──────────────────────────────────────────────

    def verify(self, username: str, password: str) -> AdminVerification:
        """
        驗證管理員帳密

        僅在密碼正確時回傳角色與正式帳號名稱。
        """
        row = self._db.fetchone(
            "SELECT username, password_hash, role FROM admins WHERE username = ?",
            (username,),
        )
        if row is None:
            return AdminVerification(valid=False)

        if not self._hasher.verify(password, row["password_hash"]):
            logger.warning(f"❌ 管理員登入失敗 | User={username}")
            return AdminVerification(valid=False)

        if self._hasher.needs_rehash(row["password_hash"]):
            self._db.execute(
                "UPDATE admins SET password_hash = ? WHERE username = ?",
                (self._hasher.hash(password), row["username"]),
            )
            logger.info(f"🔐 已更新管理員密碼雜湊參數 | User={row['username']}")

        return AdminVerification(
            valid=True,
            role=AdminRole(row["role"]),
            username=row["username"],
        )

    def get_role(self, username: str) -> Optional[AdminRole]:
        row = self._db.fetchone(
            "SELECT role FROM admins WHERE username = ?",
            (username,),
        )
        return AdminRole(row["role"]) if row else None

    # ── 新增二級管理員 ────────────────────────────────────────

    def add_secondary(self, actor: str, new_username: str, new_password: str) -> None:
        """
        超級管理員新增二級管理員

        Raises:
            Forbidden: 操作者不是超級管理員
            Conflict: 帳號已存在
        """
        if self.get_role(actor) != AdminRole.SUPER:
            logger.warning(f"🚫 非超級管理員嘗試新增管理員 | Actor={actor}")
            raise Forbidden()

        try:
            created = self._db.execute(
                """INSERT INTO admins (username, password_hash, role, created_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT (username) DO NOTHING""",
                (new_username, self._hasher.hash(new_password),
                 AdminRole.SECONDARY.value, utcnow()),
            )
        except self._db.integrity_errors:
            created = 0
        if not created:
            raise Conflict(f'Username "{new_username}" already exists')

        logger.info(f"🧑‍💼 二級管理員已建立 | User={new_username} | By={actor}")

    # ── 查詢 ─────────────────────────────────────────────────

    def list(self) -> List[Admin]:
        """取得所有管理員（最新建立者優先）"""
        rows = self._db.fetchall(
            "SELECT username, role, created_at FROM admins ORDER BY created_at DESC"
        )
        return [Admin.from_row(row) for row in rows]
