"""
🎬 TrailerBox - 全域設定檔
所有系統常數、環境變數、佇列參數皆在此集中管理。
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# ── 載入環境變數 ───────────────────────────────────────────────
BASE_DIR = Path(__file__).resolve().parent.parent.parent
load_dotenv(BASE_DIR / ".env")

# ═══════════════════════════════════════════════════════════════
# 系統設定
# ═══════════════════════════════════════════════════════════════
APP_NAME = "TrailerBox | IMDb × AcFun 預告片對照站"
VERSION = "1.0.0"
BACKEND_HOST = os.getenv("BACKEND_HOST", "0.0.0.0")
BACKEND_PORT = int(os.getenv("BACKEND_PORT", "8000"))
# 反向代理子路徑（如 "/trailers"），末尾不含 /，直接部署時留空
ROOT_PATH = os.getenv("ROOT_PATH", "").rstrip("/")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DATA_DIR = BASE_DIR / "data"
LOG_DIR = BASE_DIR / "logs"

# 確保目錄存在
DATA_DIR.mkdir(parents=True, exist_ok=True)
LOG_DIR.mkdir(parents=True, exist_ok=True)

# ═══════════════════════════════════════════════════════════════
# 資料庫設定
# ═══════════════════════════════════════════════════════════════
# "postgres" = CrateDB / PostgreSQL (正式環境)；"sqlite" = 本機開發
STORE_BACKEND = os.getenv("STORE_BACKEND", "postgres").lower()
STORE_HOST = os.getenv("CRATEDB_HOST", "localhost:5432")
STORE_USERNAME = os.getenv("CRATEDB_USERNAME", "crate")
STORE_PASSWORD = os.getenv("CRATEDB_PASSWORD", "")
STORE_DATABASE = os.getenv("CRATEDB_DATABASE", "crate")
# 主機名以此結尾時強制 TLS（CrateDB Cloud）
STORE_TLS_SUFFIX = os.getenv("STORE_TLS_SUFFIX", ".cratedb.net")
STORE_CONNECT_TIMEOUT = int(os.getenv("STORE_CONNECT_TIMEOUT", "10"))
SQLITE_PATH = Path(os.getenv("SQLITE_PATH", str(DATA_DIR / "trailerbox.db")))

# 審核交易的語句逾時（毫秒），避免長時間持有鎖
REVIEW_TIMEOUT_MS = int(os.getenv("REVIEW_TIMEOUT_MS", "5000"))

# ═══════════════════════════════════════════════════════════════
# 心跳設定
# ═══════════════════════════════════════════════════════════════
HEARTBEAT_INTERVAL = int(os.getenv("HEARTBEAT_INTERVAL", str(12 * 60 * 60)))  # 12 小時
HEARTBEAT_RETRY_BASE = 60       # 失敗後首次重試等待（秒），之後倍增

# ═══════════════════════════════════════════════════════════════
# 提交佇列設定
# ═══════════════════════════════════════════════════════════════
PENDING_LIMIT = int(os.getenv("PENDING_LIMIT", "400"))   # 待審核上限
SUBMIT_MAX_ID_ATTEMPTS = 3      # 主鍵衝突時最多嘗試次數
SUBMIT_ID_JITTER_MS = 1000      # 重新產生 ID 時加入的隨機偏移上限
RECENT_PUBLISHED_LIMIT = 10     # 最近通過列表預設筆數

# ═══════════════════════════════════════════════════════════════
# 管理員設定
# ═══════════════════════════════════════════════════════════════
ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "")
