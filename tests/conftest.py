"""
Shared fixtures: an in-memory Supabase double, fakeredis, and stub
generation/storage adapters.
"""

import copy
import itertools
from datetime import datetime, timezone, timedelta
from typing import Any, Dict, List, Optional

import fakeredis
import fakeredis.aioredis
import pytest
from rq import Queue

from renderspace.database.activity import ActivityLogService
from renderspace.database.credits import CreditService
from renderspace.database.jobs import RenderJobService
from renderspace.events.broker import EventBroker
from renderspace.render.generation import GenerationError, GenerationResult
from renderspace.render.pipeline import RenderPipeline
from renderspace.render.reaper import TimeoutReaper
from renderspace.render.service import RenderService
from renderspace.render.storage import StorageError


OWNER_ID = "user-1"
ACCOUNT_ID = "acct-1"


# =============================================================================
# Supabase double
# =============================================================================

def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _comparable(value):
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return value
    return value


class FakeResponse:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class FakeQuery:
    """The subset of the postgrest query builder the services use."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.op = "select"
        self.columns = "*"
        self.payload: Any = None
        self.filters: List = []
        self.order_by: Optional[tuple] = None
        self.limit_n: Optional[int] = None
        self.range_bounds: Optional[tuple] = None
        self.count_mode: Optional[str] = None

    def select(self, columns: str = "*", count: Optional[str] = None):
        self.op = "select"
        self.columns = columns
        self.count_mode = count
        return self

    def insert(self, data):
        self.op = "insert"
        self.payload = data
        return self

    def update(self, data):
        self.op = "update"
        self.payload = data
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def lt(self, column, value):
        self.filters.append(
            lambda row: row.get(column) is not None
            and _comparable(row.get(column)) < _comparable(value)
        )
        return self

    def gte(self, column, value):
        self.filters.append(
            lambda row: row.get(column) is not None
            and _comparable(row.get(column)) >= _comparable(value)
        )
        return self

    def order(self, column, desc: bool = False):
        self.order_by = (column, desc)
        return self

    def limit(self, n: int):
        self.limit_n = n
        return self

    def range(self, start: int, end: int):
        self.range_bounds = (start, end)
        return self

    def _matching(self) -> List[Dict[str, Any]]:
        return [row for row in self.db.tables[self.table_name] if all(f(row) for f in self.filters)]

    def _project(self, row):
        if self.columns.strip() == "*":
            return copy.deepcopy(row)
        names = [c.strip() for c in self.columns.split(",")]
        return {name: copy.deepcopy(row.get(name)) for name in names}

    def execute(self) -> FakeResponse:
        self.db.raise_if_failing(self.op, self.table_name)
        rows = self.db.tables[self.table_name]

        if self.op == "insert":
            items = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for item in items:
                row = dict(item)
                row.setdefault("id", self.db.next_id())
                rows.append(row)
                inserted.append(copy.deepcopy(row))
            return FakeResponse(inserted)

        if self.op == "update":
            updated = []
            for row in self._matching():
                row.update(copy.deepcopy(self.payload))
                updated.append(copy.deepcopy(row))
            return FakeResponse(updated)

        matched = self._matching()
        if self.order_by:
            column, desc = self.order_by
            matched = sorted(matched, key=lambda r: _comparable(r.get(column)), reverse=desc)
        total = len(matched)
        if self.range_bounds:
            start, end = self.range_bounds
            matched = matched[start:end + 1]
        if self.limit_n is not None:
            matched = matched[:self.limit_n]

        return FakeResponse(
            [self._project(row) for row in matched],
            count=total if self.count_mode else None,
        )


class FakeRpc:
    def __init__(self, db: "FakeSupabase", name: str, params: Dict[str, Any]):
        self.db = db
        self.name = name
        self.params = params

    def execute(self) -> FakeResponse:
        self.db.raise_if_failing("rpc", self.name)
        handler = getattr(self.db, f"_rpc_{self.name}")
        data = handler(**self.params)
        # The function committed but the caller never sees the response
        self.db.raise_if_failing("rpc-response", self.name)
        return FakeResponse(data)


class FakeSupabase:
    """
    In-memory stand-in for the Supabase client.

    Implements the query-builder calls the services make, plus the two
    ledger functions with the same semantics as the SQL migration.
    """

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {
            "accounts": [],
            "account_members": [],
            "render_jobs": [],
            "credit_transactions": [],
            "activity_logs": [],
        }
        self._ids = itertools.count(1)
        self.failures: Dict[tuple, Exception] = {}

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: Dict[str, Any]) -> FakeRpc:
        return FakeRpc(self, name, params)

    def next_id(self) -> int:
        return next(self._ids)

    # ----- fault injection -----

    def fail(self, op: str, target: str, error: Optional[Exception] = None):
        self.failures[(op, target)] = error or RuntimeError(f"{op} on {target} failed")

    def raise_if_failing(self, op: str, target: str):
        error = self.failures.get((op, target))
        if error is not None:
            raise error

    # ----- seeding and inspection -----

    def add_account(self, account_id: str, credits: int, members=()):
        self.tables["accounts"].append({
            "id": account_id,
            "name": account_id,
            "credits": credits,
            "created_at": _now_iso(),
        })
        for user_id in members:
            self.tables["account_members"].append({
                "user_id": user_id,
                "account_id": account_id,
                "role": "owner",
            })

    def account(self, account_id: str) -> Dict[str, Any]:
        return next(a for a in self.tables["accounts"] if a["id"] == account_id)

    def job_row(self, job_id: str) -> Dict[str, Any]:
        return next(j for j in self.tables["render_jobs"] if j["id"] == job_id)

    def age_job(self, job_id: str, minutes: float):
        row = self.job_row(job_id)
        row["created_at"] = (datetime.now(timezone.utc) - timedelta(minutes=minutes)).isoformat()

    # ----- database functions -----

    def _rpc_debit_render_credits(self, p_account_id, p_owner_id, p_amount, p_render_job_id, p_description):
        for tx in self.tables["credit_transactions"]:
            if tx.get("render_job_id") == p_render_job_id:
                return copy.deepcopy(tx)

        account = next((a for a in self.tables["accounts"] if a["id"] == p_account_id), None)
        if account is None or account["credits"] < p_amount:
            return None

        account["credits"] -= p_amount
        tx = {
            "id": self.next_id(),
            "account_id": p_account_id,
            "owner_id": p_owner_id,
            "amount": -p_amount,
            "description": p_description,
            "balance_after": account["credits"],
            "render_job_id": p_render_job_id,
            "payment_reference": None,
            "created_at": _now_iso(),
        }
        self.tables["credit_transactions"].append(tx)
        for job in self.tables["render_jobs"]:
            if job["id"] == p_render_job_id:
                job["credit_deducted"] = True
        return copy.deepcopy(tx)

    def _rpc_add_credits(self, p_account_id, p_owner_id, p_amount, p_description, p_payment_reference=None):
        if p_payment_reference is not None:
            for tx in self.tables["credit_transactions"]:
                if tx.get("payment_reference") == p_payment_reference:
                    return copy.deepcopy(tx)

        account = next((a for a in self.tables["accounts"] if a["id"] == p_account_id), None)
        if account is None:
            return None

        account["credits"] += p_amount
        tx = {
            "id": self.next_id(),
            "account_id": p_account_id,
            "owner_id": p_owner_id,
            "amount": p_amount,
            "description": p_description,
            "balance_after": account["credits"],
            "render_job_id": None,
            "payment_reference": p_payment_reference,
            "created_at": _now_iso(),
        }
        self.tables["credit_transactions"].append(tx)
        self.tables["activity_logs"].append({
            "id": self.next_id(),
            "account_id": p_account_id,
            "user_id": p_owner_id,
            "action": "PURCHASE_CREDITS",
            "timestamp": _now_iso(),
        })
        return copy.deepcopy(tx)


# =============================================================================
# Adapter stubs
# =============================================================================

class StubGeneration:
    """Returns fixed bytes per mode and records every call."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.errors: Dict[str, Exception] = {}

    def fail(self, mode: str, message: str = "OpenAI API error: boom"):
        self.errors[mode] = GenerationError(message)

    def _result(self, mode: str, prompt: str) -> GenerationResult:
        if mode in self.errors:
            raise self.errors[mode]
        return GenerationResult(image_data=f"{mode}-bytes".encode(), prompt=prompt)

    async def transform(self, input_image_url, room_type, lighting):
        self.calls.append(("transform", input_image_url))
        return self._result("transform", f"transform {room_type} {lighting}")

    async def remove_background(self, room_photo_url, room_type):
        self.calls.append(("remove_background", room_photo_url))
        return self._result("remove_background", f"empty {room_type}")

    async def compose(self, empty_room_image, style_image_url, room_type, lighting):
        self.calls.append(("compose", empty_room_image, style_image_url))
        return self._result("compose", f"compose {room_type} with {style_image_url}")

    async def close(self):
        pass


class StubStorage:
    """Keeps uploads in memory. Filenames containing a failing marker raise."""

    def __init__(self):
        self.uploads: Dict[str, bytes] = {}
        self.failing: List[str] = []

    async def upload_image(self, image_data: bytes, filename: str) -> str:
        if any(marker in filename for marker in self.failing):
            raise StorageError("Failed to upload rendered image: bucket unavailable")
        self.uploads[filename] = image_data
        return f"https://cdn.example.com/renders/{filename}"


class RecordingBroker(EventBroker):
    """EventBroker that also keeps every published event."""

    def __init__(self, redis):
        super().__init__(redis, "user-events")
        self.published: List[tuple] = []

    async def publish(self, user_id, event):
        self.published.append((user_id, event))
        return await super().publish(user_id, event)

    def events(self, name: Optional[str] = None):
        return [e for _, e in self.published if name is None or e.event == name]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def supabase():
    db = FakeSupabase()
    db.add_account(ACCOUNT_ID, credits=1, members=[OWNER_ID])
    return db


@pytest.fixture
async def redis():
    client = fakeredis.aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def generation():
    return StubGeneration()


@pytest.fixture
def storage():
    return StubStorage()


@pytest.fixture
def jobs(supabase):
    return RenderJobService(supabase)


@pytest.fixture
def credits(supabase):
    return CreditService(supabase)


@pytest.fixture
def activity(supabase):
    return ActivityLogService(supabase)


@pytest.fixture
def broker(redis):
    return RecordingBroker(redis)


@pytest.fixture
def queue_connection():
    return fakeredis.FakeStrictRedis()


@pytest.fixture
def queue(queue_connection):
    return Queue("renders-test", connection=queue_connection)


@pytest.fixture
def pipeline(jobs, credits, activity, generation, storage, broker):
    return RenderPipeline(
        jobs=jobs,
        credits=credits,
        activity=activity,
        generation=generation,
        storage=storage,
        broker=broker,
    )


@pytest.fixture
def reaper(jobs, broker):
    return TimeoutReaper(jobs, broker, timeout_minutes=6)


@pytest.fixture
def render_service(jobs, credits, activity, queue, reaper):
    return RenderService(jobs=jobs, credits=credits, activity=activity, queue=queue, reaper=reaper)


@pytest.fixture
def make_job(jobs):
    """Create a render job for the default owner."""
    async def _make(**overrides):
        params = dict(
            owner_id=OWNER_ID,
            account_id=ACCOUNT_ID,
            title="Living room",
            room_type="living room",
            lighting="natural",
            input_image_url="https://img.example.com/collage.png",
        )
        params.update(overrides)
        return await jobs.create(**params)

    return _make
