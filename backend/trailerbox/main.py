"""
🎬 TrailerBox - FastAPI 主應用程式

僅提供 JSON API，將 HTTP 請求對應到 TrailerService 的操作：
    公開:   提交對照、以 IMDb ID 查詢、最近通過列表、系統狀態
    管理員: 待審核列表、審核、管理員列表 / 新增（僅超級管理員）

管理員身分以 HTTP Basic 帳密驗證。
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from starlette.concurrency import run_in_threadpool

from trailerbox import config
from trailerbox.errors import (
    AuthenticationFailed,
    BadRequest,
    Forbidden,
    InvalidSubmission,
    TrailerBoxError,
)
from trailerbox.models import AdminRole, AdminVerification
from trailerbox.service import TrailerService

# ═══════════════════════════════════════════════════════════════
# 日誌設定
# ═══════════════════════════════════════════════════════════════
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s | %(name)-32s | %(levelname)-7s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler(
            config.LOG_DIR / "trailerbox.log",
            encoding="utf-8",
        ),
    ],
)
logger = logging.getLogger("trailerbox.main")

basic_auth = HTTPBasic()


# ═══════════════════════════════════════════════════════════════
# 依賴注入
# ═══════════════════════════════════════════════════════════════
def get_service(request: Request) -> TrailerService:
    return request.app.state.service


def require_admin(
    credentials: HTTPBasicCredentials = Depends(basic_auth),
    service: TrailerService = Depends(get_service),
) -> AdminVerification:
    result = service.verify_admin(credentials.username, credentials.password)
    if not result.valid:
        raise AuthenticationFailed()
    return result


def require_super_admin(
    admin: AdminVerification = Depends(require_admin),
) -> AdminVerification:
    if admin.role != AdminRole.SUPER:
        raise Forbidden("Forbidden: Requires super admin privileges")
    return admin


async def read_payload(request: Request) -> dict:
    """同時接受 JSON 與表單提交"""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            data = await request.json()
        except ValueError:
            raise BadRequest("Malformed JSON body") from None
        if not isinstance(data, dict):
            raise BadRequest("JSON body must be an object")
        return data
    form = await request.form()
    return {key: value for key, value in form.items()}


def _field(data: dict, key: str) -> str:
    value = data.get(key)
    return str(value).strip() if value is not None else ""


# ═══════════════════════════════════════════════════════════════
# 應用程式工廠
# ═══════════════════════════════════════════════════════════════
def create_app(open_service: Optional[Callable[[], TrailerService]] = None) -> FastAPI:
    """
    建立 FastAPI 應用程式

    Args:
        open_service: 建立 TrailerService 的工廠（測試時注入 sqlite 設定），
            預設依 config 連線
    """
    open_service = open_service or TrailerService.open

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """應用程式啟動/關閉生命週期"""
        logger.info("=" * 60)
        logger.info(f"🎬 {config.APP_NAME} v{config.VERSION}")
        logger.info("   啟動中...")
        logger.info("=" * 60)

        # 連線失敗會拋出 ConnectivityError 並中止啟動
        service = open_service()
        app.state.service = service
        await service.start_heartbeat()
        logger.info("✅ 所有模組已啟動，系統就緒！")

        try:
            yield
        finally:
            logger.info("🔴 正在關閉系統...")
            await service.close()
            logger.info("👋 系統已安全關閉")

    app = FastAPI(
        title=config.APP_NAME,
        version=config.VERSION,
        lifespan=lifespan,
        root_path=config.ROOT_PATH,
    )

    @app.exception_handler(TrailerBoxError)
    async def handle_trailerbox_error(request: Request, exc: TrailerBoxError):
        headers = None
        if isinstance(exc, AuthenticationFailed):
            headers = {"WWW-Authenticate": "Basic"}
        return JSONResponse(
            status_code=exc.http_status_code,
            content=exc.to_dict(),
            headers=headers,
        )

    # ── 公開 API ─────────────────────────────────────────────

    @app.post("/submit", status_code=201)
    async def submit_entry(request: Request):
        """提交 IMDb ID → AcFun URL 對照"""
        data = await read_payload(request)
        imdb_id = _field(data, "imdb_id")
        acfun_url = _field(data, "acfun_url")
        if not imdb_id or not acfun_url:
            raise InvalidSubmission()
        service = get_service(request)
        submission_id = await run_in_threadpool(service.submit, imdb_id, acfun_url)
        return {"success": True, "id": submission_id}

    @app.get("/api/status")
    def get_system_status(service: TrailerService = Depends(get_service)):
        return service.status()

    @app.get("/api/trailers/recent")
    def get_recent_trailers(limit: int = config.RECENT_PUBLISHED_LIMIT,
                            service: TrailerService = Depends(get_service)):
        return [m.to_dict() for m in service.recent_published(limit)]

    @app.get("/api/{imdb_id}")
    def get_acfun_url(imdb_id: str, service: TrailerService = Depends(get_service)):
        """以 IMDb ID 查詢已發佈的 AcFun URL（未發佈時為 null）"""
        return {"imdb_id": imdb_id, "acfun_url": service.lookup(imdb_id)}

    # ── 管理員 API ───────────────────────────────────────────

    @app.get("/admin/api/pending")
    def get_pending_submissions(
        admin: AdminVerification = Depends(require_admin),
        service: TrailerService = Depends(get_service),
    ):
        submissions = service.list_pending()
        return {
            "admin": admin.to_dict(),
            "count": len(submissions),
            "limit": service.queue.limit,
            "submissions": [s.to_dict() for s in submissions],
        }

    @app.post("/admin/api/review")
    async def review_submission(
        request: Request,
        admin: AdminVerification = Depends(require_admin),
    ):
        """審核提交（需 confirmed=true）"""
        data = await read_payload(request)
        submission_id = _field(data, "id")
        action = _field(data, "action")
        confirmed = _field(data, "confirmed").lower()

        if confirmed != "true":
            raise BadRequest("Operation requires confirmation")
        if not submission_id or action not in ("approve", "reject"):
            raise BadRequest("Invalid request data")

        service = get_service(request)
        await run_in_threadpool(
            service.review, submission_id, action == "approve", admin.username
        )
        return {"success": True, "id": submission_id, "action": action}

    @app.get("/admin/api/admins")
    def get_admins(
        admin: AdminVerification = Depends(require_super_admin),
        service: TrailerService = Depends(get_service),
    ):
        return [a.to_dict() for a in service.list_admins()]

    @app.post("/admin/api/admins", status_code=201)
    async def add_admin(
        request: Request,
        admin: AdminVerification = Depends(require_super_admin),
    ):
        data = await read_payload(request)
        username = _field(data, "username")
        password = data.get("password") or ""
        if not username or not password:
            raise BadRequest("Username and password are required")

        service = get_service(request)
        await run_in_threadpool(
            service.add_secondary_admin, admin.username, username, str(password)
        )
        return {"success": True, "message": f"Secondary admin {username} created"}

    return app


app = create_app()


# ═══════════════════════════════════════════════════════════════
# 入口點
# ═══════════════════════════════════════════════════════════════
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "trailerbox.main:app",
        host=config.BACKEND_HOST,
        port=config.BACKEND_PORT,
        root_path=config.ROOT_PATH,
        reload=False,
        log_level="info",
    )
