"""
🧪 REST API 測試
以 TestClient 驅動完整生命週期（lifespan 會開啟 sqlite 服務並啟動心跳）。
"""

import pytest
from fastapi.testclient import TestClient

from trailerbox.main import create_app
from trailerbox.service import TrailerService

from conftest import SUPER_PASS, SUPER_USER

SUPER = (SUPER_USER, SUPER_PASS)
URL = "https://www.acfun.cn/v/ac4567"


@pytest.fixture
def client(store_settings, fast_hasher):
    def open_service():
        return TrailerService.open(
            settings=store_settings,
            admin_username=SUPER_USER,
            admin_password=SUPER_PASS,
            hasher=fast_hasher,
            pending_limit=3,
            heartbeat_interval=3600,
        )

    with TestClient(create_app(open_service)) as test_client:
        yield test_client


def _submit(client, imdb_id="tt0133093", url=URL):
    r = client.post("/submit", data={"imdb_id": imdb_id, "acfun_url": url})
    assert r.status_code == 201, r.text
    return r.json()["id"]


# ═══════════════════════════════════════════════════════════════
# 公開 API
# ═══════════════════════════════════════════════════════════════

def test_submit_form_and_json(client):
    form_id = _submit(client)
    r = client.post("/submit", json={"imdb_id": "tt2", "acfun_url": URL})
    assert r.status_code == 201
    assert r.json()["success"] is True
    assert r.json()["id"] != form_id


def test_submit_missing_field(client):
    r = client.post("/submit", data={"imdb_id": "tt1"})
    assert r.status_code == 400
    assert r.json()["error"] == "INVALID_SUBMISSION"


def test_submit_malformed_json(client):
    r = client.post("/submit", content=b"{not json", headers={"content-type": "application/json"})
    assert r.status_code == 400


def test_submit_capacity(client):
    for i in range(3):
        _submit(client, imdb_id=f"tt{i}")
    r = client.post("/submit", data={"imdb_id": "tt9", "acfun_url": URL})
    assert r.status_code == 429
    assert r.json()["error"] == "CAPACITY_EXCEEDED"


def test_lookup_unpublished(client):
    r = client.get("/api/tt0000000")
    assert r.status_code == 200
    assert r.json() == {"imdb_id": "tt0000000", "acfun_url": None}


def test_status(client):
    r = client.get("/api/status")
    assert r.status_code == 200
    body = r.json()
    assert body["database"]["connected"] is True
    assert body["pending_limit"] == 3
    assert body["heartbeat"]["name"] == "heartbeat"


# ═══════════════════════════════════════════════════════════════
# 管理員 API
# ═══════════════════════════════════════════════════════════════

def test_admin_requires_credentials(client):
    assert client.get("/admin/api/pending").status_code == 401

    r = client.get("/admin/api/pending", auth=(SUPER_USER, "wrong"))
    assert r.status_code == 401
    assert r.json()["error"] == "AUTHENTICATION_FAILED"
    assert r.headers["www-authenticate"] == "Basic"


def test_review_round_trip(client):
    sid = _submit(client)

    r = client.get("/admin/api/pending", auth=SUPER)
    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 1
    assert body["submissions"][0]["id"] == sid
    assert body["admin"]["role"] == "super"

    r = client.post("/admin/api/review", auth=SUPER,
                    json={"id": sid, "action": "approve", "confirmed": True})
    assert r.status_code == 200, r.text

    assert client.get("/api/tt0133093").json()["acfun_url"] == URL
    recent = client.get("/api/trailers/recent", params={"limit": 5}).json()
    assert [m["imdb_id"] for m in recent] == ["tt0133093"]
    assert recent[0]["reviewer"] == SUPER_USER

    # 第二次審核同一筆
    r = client.post("/admin/api/review", auth=SUPER,
                    data={"id": str(sid), "action": "reject", "confirmed": "true"})
    assert r.status_code == 404
    assert r.json()["error"] == "NOT_FOUND"


@pytest.mark.parametrize("payload", [
    {"action": "approve"},                                  # 未確認
    {"action": "approve", "confirmed": "false"},
    {"action": "publish", "confirmed": "true"},             # 未知動作
])
def test_review_validation(client, payload):
    sid = _submit(client)
    r = client.post("/admin/api/review", auth=SUPER, data={"id": str(sid), **payload})
    assert r.status_code == 400
    assert client.get("/admin/api/pending", auth=SUPER).json()["count"] == 1


def test_reject_via_form(client):
    sid = _submit(client)
    r = client.post("/admin/api/review", auth=SUPER,
                    data={"id": str(sid), "action": "reject", "confirmed": "true"})
    assert r.status_code == 200
    assert client.get("/api/tt0133093").json()["acfun_url"] is None


def test_admin_management(client):
    r = client.post("/admin/api/admins", auth=SUPER,
                    json={"username": "alice", "password": "alice-pass"})
    assert r.status_code == 201, r.text

    alice = ("alice", "alice-pass")
    assert client.get("/admin/api/pending", auth=alice).status_code == 200
    assert client.get("/admin/api/admins", auth=alice).status_code == 403
    r = client.post("/admin/api/admins", auth=alice,
                    json={"username": "bob", "password": "bob-pass"})
    assert r.status_code == 403
    assert r.json()["error"] == "FORBIDDEN"

    r = client.post("/admin/api/admins", auth=SUPER,
                    json={"username": "alice", "password": "x"})
    assert r.status_code == 409

    r = client.post("/admin/api/admins", auth=SUPER, json={"username": "carol"})
    assert r.status_code == 400

    admins = client.get("/admin/api/admins", auth=SUPER).json()
    assert [a["username"] for a in admins] == ["alice", SUPER_USER]
    assert {a["role"] for a in admins} == {"super", "secondary"}
