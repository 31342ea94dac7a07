"""
🎬 TrailerBox - 資料結構

資料表列對應的 dataclass，由各元件從查詢結果建構。
"""

from enum import Enum
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Optional

from trailerbox.database import as_utc


class SubmissionStatus(str, Enum):
    """提交狀態"""
    PENDING = "pending"       # 等待審核
    APPROVED = "approved"     # 已核准（已發佈到 trailers）
    REJECTED = "rejected"     # 已拒絕


class AdminRole(str, Enum):
    SUPER = "super"           # 可新增其他管理員
    SECONDARY = "secondary"   # 僅可審核


def _serialize(d: dict) -> dict:
    for key, val in d.items():
        if isinstance(val, datetime):
            d[key] = val.isoformat()
        elif isinstance(val, Enum):
            d[key] = val.value
    return d


@dataclass
class Submission:
    """待審核（或已決定）的對照提案"""
    id: int
    imdb_id: str
    acfun_url: str
    submitted_at: datetime
    status: SubmissionStatus = SubmissionStatus.PENDING

    @classmethod
    def from_row(cls, row: dict) -> "Submission":
        return cls(
            id=int(row["id"]),
            imdb_id=row["imdb_id"],
            acfun_url=row["acfun_url"],
            submitted_at=as_utc(row["submitted_at"]),
            status=SubmissionStatus(row.get("status", "pending")),
        )

    def to_dict(self) -> dict:
        return _serialize(asdict(self))


@dataclass
class PublishedMapping:
    """已發佈的 IMDb → AcFun 對照（以 imdb_id 為鍵）"""
    imdb_id: str
    acfun_url: str
    approved_at: datetime
    reviewer: str

    @classmethod
    def from_row(cls, row: dict) -> "PublishedMapping":
        return cls(
            imdb_id=row["imdb_id"],
            acfun_url=row["acfun_url"],
            approved_at=as_utc(row["approved_at"]),
            reviewer=row["reviewer"],
        )

    def to_dict(self) -> dict:
        return _serialize(asdict(self))


@dataclass
class Admin:
    username: str
    role: AdminRole
    created_at: datetime

    @classmethod
    def from_row(cls, row: dict) -> "Admin":
        return cls(
            username=row["username"],
            role=AdminRole(row["role"]),
            created_at=as_utc(row["created_at"]),
        )

    def to_dict(self) -> dict:
        return _serialize(asdict(self))


@dataclass
class AdminVerification:
    """
    管理員登入驗證結果

    僅在密碼正確時填入 role 與 username。
    """
    valid: bool
    role: Optional[AdminRole] = None
    username: Optional[str] = None

    def to_dict(self) -> dict:
        return _serialize(asdict(self))
