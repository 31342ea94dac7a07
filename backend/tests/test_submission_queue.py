"""
🧪 提交佇列測試
驗證欄位檢查、待審核上限、ID 衝突重試與排序。
"""

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock, call

import pytest

from trailerbox import config
from trailerbox.errors import CapacityExceeded, DuplicateKey, InvalidSubmission
from trailerbox.models import SubmissionStatus
from trailerbox.supervisor import IdAllocator, ModerationTransaction, SubmissionQueue

URL = "https://www.acfun.cn/v/ac123"


# ── ID 分配器 ────────────────────────────────────────────────

def test_id_allocator_is_strictly_increasing():
    ids = IdAllocator(clock=lambda: 1000.0)
    assert [ids.next_id() for _ in range(3)] == [1000000, 1000001, 1000002]


def test_id_allocator_jitter_moves_forward():
    ids = IdAllocator(clock=lambda: 5.0)
    first = ids.next_id()
    second = ids.next_id(jitter_ms=1000)
    assert first == 5000
    assert 5000 < second <= 6000


# ── 建立提交 ─────────────────────────────────────────────────

def test_submit_creates_pending(db):
    queue = SubmissionQueue(db)
    sid = queue.submit("  tt0111161 ", f" {URL} ")

    assert queue.pending_count() == 1
    sub = queue.get(sid)
    assert sub.imdb_id == "tt0111161"
    assert sub.acfun_url == URL
    assert sub.status == SubmissionStatus.PENDING
    assert sub.submitted_at.tzinfo is not None


@pytest.mark.parametrize("imdb_id, url", [("", URL), ("tt1", ""), ("   ", URL), (None, URL)])
def test_submit_rejects_empty_fields(db, imdb_id, url):
    queue = SubmissionQueue(db)
    with pytest.raises(InvalidSubmission):
        queue.submit(imdb_id, url)
    assert queue.pending_count() == 0


def test_capacity_limit(db):
    queue = SubmissionQueue(db, limit=3)
    for i in range(3):
        queue.submit(f"tt{i}", URL)

    with pytest.raises(CapacityExceeded):
        queue.submit("tt9", URL)
    assert queue.pending_count() == 3


def test_reviewed_submission_frees_capacity(db):
    queue = SubmissionQueue(db, limit=2)
    first = queue.submit("tt1", URL)
    queue.submit("tt2", URL)
    with pytest.raises(CapacityExceeded):
        queue.submit("tt3", URL)

    ModerationTransaction(db).review(first, approve=False, reviewer="root")
    queue.submit("tt3", URL)
    assert queue.pending_count() == 2


def test_concurrent_submits_never_exceed_limit(db):
    queue = SubmissionQueue(db, limit=5)

    def attempt(i):
        try:
            queue.submit(f"tt{i}", URL)
            return True
        except CapacityExceeded:
            return False

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(attempt, range(20)))

    assert results.count(True) == 5
    assert queue.pending_count() == 5


# ── ID 衝突 ──────────────────────────────────────────────────

def test_id_collision_is_retried_with_jitter(db):
    ids = MagicMock()
    ids.next_id.side_effect = [42, 42, 43]
    queue = SubmissionQueue(db, id_allocator=ids)

    assert queue.submit("tt1", URL) == 42
    assert queue.submit("tt2", URL) == 43
    assert ids.next_id.call_args_list[1:] == [
        call(jitter_ms=0),
        call(jitter_ms=config.SUBMIT_ID_JITTER_MS),
    ]
    assert queue.pending_count() == 2


def test_id_collision_exhaustion(db):
    ids = MagicMock()
    ids.next_id.return_value = 7
    queue = SubmissionQueue(db, id_allocator=ids, max_attempts=3)

    queue.submit("tt1", URL)
    ids.next_id.reset_mock()
    with pytest.raises(DuplicateKey):
        queue.submit("tt2", URL)
    assert ids.next_id.call_count == 3
    assert queue.pending_count() == 1


# ── 查詢 ─────────────────────────────────────────────────────

def test_list_pending_oldest_first(db):
    queue = SubmissionQueue(db)
    ids = [queue.submit(f"tt{i}", URL) for i in range(4)]
    ModerationTransaction(db).review(ids[1], approve=True, reviewer="root")

    pending = queue.list_pending()
    assert [s.id for s in pending] == [ids[0], ids[2], ids[3]]
    assert all(s.status == SubmissionStatus.PENDING for s in pending)
    assert pending[0].to_dict()["status"] == "pending"
