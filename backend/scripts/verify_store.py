"""
🎬 TrailerBox - 資料庫連線驗證腳本

依目前的 .env / 環境變數開啟服務、送出一次心跳並印出狀態摘要。
部署到新環境後可單獨執行，確認資料庫可達且 Schema 已就緒。

使用方式:
    cd backend
    python scripts/verify_store.py
"""

import json
import logging
import sys
from pathlib import Path

# 將 backend 目錄加入 Python 路徑
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)-32s | %(levelname)-7s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("trailerbox.scripts.verify_store")


def main() -> int:
    logger.info("Step 1: 載入設定...")
    from trailerbox import config
    from trailerbox.database import StoreSettings
    from trailerbox.errors import ConnectivityError
    from trailerbox.service import TrailerService

    settings = StoreSettings()
    logger.info(f"   目標: {settings.describe()}")

    logger.info("Step 2: 連線並建立 Schema...")
    try:
        service = TrailerService.open(settings=settings)
    except ConnectivityError as e:
        logger.error(f"❌ 無法連線: {e.message}")
        return 1

    try:
        logger.info("Step 3: 寫入心跳...")
        if not service.db.heartbeat():
            logger.error("❌ 心跳寫入失敗")
            return 1

        status = service.status()
        print(json.dumps(status, ensure_ascii=False, indent=2))
        logger.info(
            f"✅ 驗證通過 | 待審核 {status['pending_count']}/{config.PENDING_LIMIT}"
        )
        return 0
    finally:
        service.db.close()


if __name__ == "__main__":
    sys.exit(main())
