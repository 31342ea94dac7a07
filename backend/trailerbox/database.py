"""
🎬 TrailerBox - 資料庫管理模組

持有唯一一條長連線，負責 Schema 建立、心跳寫入與交易控制。
支援兩種後端：
    postgres: CrateDB / PostgreSQL（psycopg2，正式環境）
    sqlite:   本機開發與測試（標準庫 sqlite3）

所有 SQL 一律以 `?` 作為參數佔位符撰寫，由 StoreCursor 依後端轉換。
"""

import sqlite3
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, List, Dict, Any, Sequence, Iterator

import psycopg2
from psycopg2.extras import RealDictCursor

from trailerbox import config
from trailerbox.errors import ConnectivityError

logger = logging.getLogger("trailerbox.database")

HEARTBEAT_ROW_ID = 1

# sqlite 時間欄位以 ISO-8601 字串儲存，讀回時還原為 datetime
sqlite3.register_adapter(datetime, lambda d: d.isoformat(timespec="microseconds"))
sqlite3.register_converter(
    "TIMESTAMP", lambda raw: datetime.fromisoformat(raw.decode())
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """將資料庫回傳的時間統一為帶時區的 UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ═══════════════════════════════════════════════════════════════
# 連線設定
# ═══════════════════════════════════════════════════════════════
@dataclass
class StoreSettings:
    """資料庫連線參數（預設值取自 config）"""
    backend: str = config.STORE_BACKEND
    host: str = config.STORE_HOST              # "host" 或 "host:port"
    username: str = config.STORE_USERNAME
    password: str = field(default=config.STORE_PASSWORD, repr=False)
    database: str = config.STORE_DATABASE
    tls_suffix: str = config.STORE_TLS_SUFFIX
    connect_timeout: int = config.STORE_CONNECT_TIMEOUT
    sqlite_path: Path = config.SQLITE_PATH
    statement_timeout_ms: int = config.REVIEW_TIMEOUT_MS

    @property
    def hostname(self) -> str:
        return self.host.rsplit(":", 1)[0] if ":" in self.host else self.host

    @property
    def port(self) -> int:
        if ":" in self.host:
            port_str = self.host.rsplit(":", 1)[1]
            if port_str:
                return int(port_str)
        return 5432

    @property
    def use_tls(self) -> bool:
        """主機名以 TLS 後綴結尾時（如 CrateDB Cloud）強制加密連線"""
        return bool(self.tls_suffix) and self.hostname.endswith(self.tls_suffix)

    def describe(self) -> str:
        if self.backend == "sqlite":
            return f"sqlite:{self.sqlite_path}"
        return (f"{self.backend}://{self.username}@{self.hostname}:{self.port}"
                f"/{self.database} (tls={self.use_tls})")


# ═══════════════════════════════════════════════════════════════
# 游標包裝
# ═══════════════════════════════════════════════════════════════
class StoreCursor:
    """統一 sqlite3 / psycopg2 游標介面，回傳 dict 列"""

    def __init__(self, raw_cursor, backend: str):
        self._cur = raw_cursor
        self._backend = backend

    def _sql(self, sql: str) -> str:
        if self._backend == "postgres":
            return sql.replace("?", "%s")
        return sql

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """執行語句並回傳受影響的列數"""
        self._cur.execute(self._sql(sql), tuple(params))
        return self._cur.rowcount

    def fetchone(self, sql: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        self._cur.execute(self._sql(sql), tuple(params))
        row = self._cur.fetchone()
        return dict(row) if row is not None else None

    def fetchall(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        self._cur.execute(self._sql(sql), tuple(params))
        return [dict(row) for row in self._cur.fetchall()]

    def close(self):
        self._cur.close()


# ═══════════════════════════════════════════════════════════════
# 資料庫管理器
# ═══════════════════════════════════════════════════════════════
class Database:
    """
    資料庫連線管理器

    單一共用連線，所有語句經由同一把可重入鎖序列化；
    容量檢查+寫入、審核交易、新增管理員皆在單一臨界區內完成。
    """

    # 主鍵 / 唯一鍵衝突
    integrity_errors = (sqlite3.IntegrityError, psycopg2.IntegrityError)
    # 連線層級錯誤（伺服器斷線、連線已關閉）
    connection_errors = (psycopg2.OperationalError, psycopg2.InterfaceError)

    def __init__(self, settings: Optional[StoreSettings] = None):
        self.settings = settings or StoreSettings()
        self._conn = None
        self._lock = threading.RLock()
        # 未連線或已由 close() 主動關閉；此時不自動重連
        self._closed = True

    @property
    def backend(self) -> str:
        return self.settings.backend

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    # ── 連線生命週期 ──────────────────────────────────────────

    def connect(self):
        """
        建立連線

        初次連線失敗時拋出 ConnectivityError，由啟動流程中止程序。
        """
        with self._lock:
            if self._conn is not None:
                return
            try:
                self._conn = self._open()
            except Exception as e:
                logger.error(f"❌ 無法連線資料庫 {self.settings.describe()}: {e}")
                raise ConnectivityError(f"Failed to connect to database: {e}") from e
            self._closed = False
        logger.info(f"✅ 已連線資料庫: {self.settings.describe()}")

    def _open(self):
        s = self.settings
        if s.backend == "sqlite":
            conn = sqlite3.connect(
                str(s.sqlite_path),
                timeout=s.connect_timeout,
                detect_types=sqlite3.PARSE_DECLTYPES,
                isolation_level=None,       # autocommit，交易以 BEGIN 明確開啟
                check_same_thread=False,    # 心跳於 worker thread 執行，由 _lock 保護
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            return conn

        if s.backend == "postgres":
            conn = psycopg2.connect(
                host=s.hostname,
                port=s.port,
                user=s.username,
                password=s.password,
                dbname=s.database,
                sslmode="require" if s.use_tls else "prefer",
                connect_timeout=s.connect_timeout,
            )
            conn.autocommit = True
            return conn

        raise ValueError(f"未知的資料庫後端: {s.backend}")

    def reconnect(self):
        """
        以新連線取代現有連線

        新連線在鎖外建立，建立期間其他請求仍可使用舊連線；
        僅在替換時短暫持有鎖。已由 close() 關閉時拋出 ConnectivityError。
        """
        if self._closed:
            raise ConnectivityError("Database has been closed")
        try:
            fresh = self._open()
        except Exception as e:
            raise ConnectivityError(f"Failed to reconnect to database: {e}") from e

        with self._lock:
            if self._closed:
                stale = fresh
            else:
                stale, self._conn = self._conn, fresh
        self._close_quietly(stale)
        if stale is fresh:
            raise ConnectivityError("Database was closed during reconnect")
        logger.info("🔌 資料庫已重新連線")

    def close(self):
        """關閉連線（可重複呼叫，未連線時為 no-op）"""
        with self._lock:
            self._closed = True
            if self._conn is None:
                return
            self._discard()
        logger.info("🔴 資料庫連線已關閉")

    def _discard(self):
        conn, self._conn = self._conn, None
        self._close_quietly(conn)

    @staticmethod
    def _close_quietly(conn):
        if conn is None:
            return
        try:
            conn.close()
        except Exception as e:
            logger.warning(f"⚠️ 關閉舊連線時發生錯誤: {e}")

    # ── 語句執行 ──────────────────────────────────────────────

    @contextmanager
    def cursor(self) -> Iterator[StoreCursor]:
        """取得游標（持有連線鎖）；單一語句依賴資料庫的語句原子性"""
        with self._lock:
            if self._conn is None:
                raise ConnectivityError("Database client not initialized")
            raw = self._raw_cursor()
            cur = StoreCursor(raw, self.backend)
            try:
                yield cur
            except self.connection_errors as e:
                raise ConnectivityError(str(e)) from e
            finally:
                cur.close()

    def _raw_cursor(self):
        if self.backend == "postgres":
            return self._conn.cursor(cursor_factory=RealDictCursor)
        return self._conn.cursor()

    @contextmanager
    def transaction(self) -> Iterator[StoreCursor]:
        """
        明確交易（BEGIN / COMMIT / ROLLBACK）

        區塊內任何例外都會先 ROLLBACK 再重新拋出，
        確保兩張表不會出現部分寫入。
        """
        with self.cursor() as cur:
            if self.backend == "sqlite":
                cur.execute("BEGIN IMMEDIATE")
            else:
                cur.execute("BEGIN")
                cur.execute(
                    f"SET LOCAL statement_timeout = {int(self.settings.statement_timeout_ms)}"
                )
            try:
                yield cur
                cur.execute("COMMIT")
            except Exception:
                try:
                    cur.execute("ROLLBACK")
                except Exception as rollback_error:
                    logger.error(f"❌ ROLLBACK 失敗: {rollback_error}")
                raise

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        with self.cursor() as cur:
            return cur.execute(sql, params)

    def fetchone(self, sql: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        with self.cursor() as cur:
            return cur.fetchone(sql, params)

    def fetchall(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        with self.cursor() as cur:
            return cur.fetchall(sql, params)

    # ── Schema ───────────────────────────────────────────────

    def ensure_schema(self):
        """
        建立所有資料表（可重複呼叫）並初始化心跳記錄

        多個實例同時啟動時，CREATE 可能因對方已建立而觸發唯一鍵錯誤，
        此情況視為已存在。
        """
        for statement in SCHEMA_STATEMENTS:
            try:
                self.execute(statement)
            except self.integrity_errors as e:
                logger.debug(f"Schema 已由其他實例建立: {e}")

        self.execute(
            """INSERT INTO system_heartbeat (id, last_heartbeat)
               VALUES (?, ?)
               ON CONFLICT (id) DO UPDATE SET last_heartbeat = excluded.last_heartbeat""",
            (HEARTBEAT_ROW_ID, utcnow()),
        )
        logger.info("📦 資料表已就緒 (submissions, trailers, admins, system_heartbeat)")

    # ── 心跳 ─────────────────────────────────────────────────

    def heartbeat(self) -> bool:
        """
        更新心跳時間

        失敗時記錄錯誤並嘗試重新連線一次；永不拋出例外。
        連線從未建立或已由 close() 關閉時直接回傳 False，不重連。

        Returns:
            本次心跳是否寫入成功
        """
        if self._closed:
            logger.info("💤 資料庫未連線，略過心跳")
            return False
        try:
            self.execute(
                "UPDATE system_heartbeat SET last_heartbeat = ? WHERE id = ?",
                (utcnow(), HEARTBEAT_ROW_ID),
            )
            logger.info(f"💓 心跳已送出 {utcnow().isoformat()}")
            return True
        except Exception as e:
            logger.error(f"❌ 心跳失敗: {e}")

        if self._closed:
            return False
        try:
            logger.info("🔌 嘗試重新連線資料庫...")
            self.reconnect()
        except Exception as reconnect_error:
            logger.error(f"❌ 重新連線失敗: {reconnect_error}")
        return False

    def last_heartbeat(self) -> Optional[datetime]:
        row = self.fetchone(
            "SELECT last_heartbeat FROM system_heartbeat WHERE id = ?",
            (HEARTBEAT_ROW_ID,),
        )
        return as_utc(row["last_heartbeat"]) if row else None


# ═══════════════════════════════════════════════════════════════
# 資料庫 Schema
# ═══════════════════════════════════════════════════════════════
SCHEMA_STATEMENTS = [
    # 提交記錄（BIGINT 時間戳 ID）
    """CREATE TABLE IF NOT EXISTS submissions (
        id BIGINT PRIMARY KEY,
        imdb_id TEXT NOT NULL,
        acfun_url TEXT NOT NULL,
        submitted_at TIMESTAMP WITH TIME ZONE NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending'
    )""",
    # 已通過審核的對照表
    """CREATE TABLE IF NOT EXISTS trailers (
        imdb_id TEXT PRIMARY KEY,
        acfun_url TEXT NOT NULL,
        approved_at TIMESTAMP WITH TIME ZONE NOT NULL,
        reviewer TEXT NOT NULL
    )""",
    # 管理員
    """CREATE TABLE IF NOT EXISTS admins (
        username TEXT PRIMARY KEY,
        password_hash TEXT NOT NULL,
        role TEXT NOT NULL,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL
    )""",
    # 心跳（單列）
    """CREATE TABLE IF NOT EXISTS system_heartbeat (
        id INTEGER PRIMARY KEY,
        last_heartbeat TIMESTAMP WITH TIME ZONE NOT NULL
    )""",
]
