import logging
import os
import re
import time
from datetime import date, datetime

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    event,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from budgie.balances import MODE_PROJECTED, SUPPORTED_MODES, balances_as_of, normalize_mode
from budgie.interest import SUPPORTED_COMPOUNDS, validate_compound
from budgie.ledger import Account, Entry, LedgerSnapshot
from budgie.recurrence import (
    SUPPORTED_KINDS,
    Schedule,
    expand_schedules,
    normalize_frequency,
    normalize_kind,
)
from budgie.revisions import ScheduleRevision
from budgie.series import (
    DEFAULT_STEP_DAYS,
    MAX_POINTS,
    MAX_STEP_DAYS,
    MIN_STEP_DAYS,
    SeriesLimitError,
    build_series,
    validate_series_request,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI()

frontend_origin = os.getenv("FRONTEND_ORIGIN", "http://localhost:3000")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_database_url() -> str:
    url = os.getenv("DATABASE_URL", "").strip()
    if url:
        return url
    db_path = os.getenv("BUDGIE_DB", "").strip() or "./budgie.db"
    return f"sqlite:///{db_path}"


def build_engine(database_url: str, **kwargs):
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    built = create_engine(database_url, connect_args=connect_args, **kwargs)
    if database_url.startswith("sqlite"):
        event.listen(built, "connect", _enable_sqlite_foreign_keys)
    return built


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.close()


engine = build_engine(get_database_url())
metadata = MetaData()

TRUTHY_VALUES = {"1", "true", "yes", "on"}
ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

accounts = Table(
    "accounts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("opening_date", Date, nullable=False),
    Column("opening_balance_cents", Integer, nullable=False, server_default="0"),
    Column("description", String(500)),
    Column("archived_at", Date),
    Column("is_liability", Boolean, nullable=False, server_default="0"),
    Column("is_interest_bearing", Boolean, nullable=False, server_default="0"),
    Column("interest_apr_bps", Integer, nullable=False, server_default="0"),
    Column("interest_compound", String(10), nullable=False, server_default="daily"),
    Column("exclude_from_dashboard", Boolean, nullable=False, server_default="0"),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

schedules = Table(
    "schedules",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("kind", String(20), nullable=False),
    Column("amount_cents", Integer, nullable=False),
    Column("src_account_id", Integer, ForeignKey("accounts.id")),
    Column("dest_account_id", Integer, ForeignKey("accounts.id")),
    Column("start_date", Date, nullable=False),
    Column("end_date", Date),
    Column("frequency", String(20), nullable=False),
    Column("interval", Integer, nullable=False, server_default="1"),
    Column("day_of_month", Integer),
    Column("day_of_week", Integer),
    Column("description", String(500)),
    Column("is_active", Boolean, nullable=False, server_default="1"),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

schedule_revisions = Table(
    "schedule_revisions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("schedule_id", Integer, ForeignKey("schedules.id"), nullable=False),
    Column("effective_date", Date, nullable=False),
    Column("amount_cents", Integer, nullable=False),
    Column("description", String(500)),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

entries = Table(
    "entries",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("entry_date", Date, nullable=False),
    Column("name", String(255), nullable=False),
    Column("amount_cents", Integer, nullable=False),
    Column("src_account_id", Integer, ForeignKey("accounts.id")),
    Column("dest_account_id", Integer, ForeignKey("accounts.id")),
    Column("schedule_id", Integer, ForeignKey("schedules.id")),
    Column("description", String(500)),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)


@app.on_event("startup")
def init_db() -> None:
    metadata.create_all(engine)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    path = request.url.path
    if request.url.query:
        path += "?" + request.url.query
    logger.info(
        "%s %s %s %d %.0fms",
        client_ip_for_log(request),
        request.method,
        path,
        response.status_code,
        elapsed_ms,
    )
    return response


def client_ip_for_log(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "").strip()
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip", "").strip()
    if real_ip:
        return real_ip
    if request.client:
        return request.client.host
    return "-"


class AccountPayload(BaseModel):
    name: str
    opening_date: date
    opening_balance_cents: int = 0
    description: str | None = None
    archived_at: date | None = None
    is_liability: bool = False
    is_interest_bearing: bool = False
    interest_apr_bps: int | None = None
    interest_compound: str | None = None
    exclude_from_dashboard: bool = False

    @classmethod
    def validate_payload(cls, payload: "AccountPayload") -> "AccountPayload":
        payload.name = payload.name.strip()
        if not payload.name:
            raise ValueError("Account name required.")
        payload.description = payload.description.strip() if payload.description else None
        payload.interest_compound = validate_compound(payload.interest_compound)
        if payload.is_interest_bearing:
            if payload.interest_apr_bps is None:
                raise ValueError("interest_apr_bps is required for interest-bearing accounts.")
            if payload.interest_apr_bps < 0:
                raise ValueError("interest_apr_bps must be >= 0.")
        if payload.interest_apr_bps is None:
            payload.interest_apr_bps = 0
        return payload


class AccountResponse(BaseModel):
    id: int
    name: str
    opening_date: date
    opening_balance_cents: int
    description: str | None = None
    archived_at: date | None = None
    is_liability: bool
    is_interest_bearing: bool
    interest_apr_bps: int
    interest_compound: str
    exclude_from_dashboard: bool
    created_at: datetime | None = None


class SchedulePayload(BaseModel):
    name: str
    kind: str
    amount_cents: int
    src_account_id: int | None = None
    dest_account_id: int | None = None
    start_date: date
    end_date: date | None = None
    frequency: str = "monthly"
    interval: int = 1
    day_of_month: int | None = None
    day_of_week: int | None = None
    description: str | None = None
    is_active: bool = True

    @classmethod
    def validate_payload(cls, payload: "SchedulePayload") -> "SchedulePayload":
        payload.name = payload.name.strip()
        if not payload.name:
            raise ValueError("Schedule name required.")
        payload.kind = normalize_kind(payload.kind)
        payload.frequency = normalize_frequency(payload.frequency)
        if payload.amount_cents <= 0:
            raise ValueError("amount_cents must be greater than zero.")
        if payload.interval < 1:
            payload.interval = 1
        if payload.day_of_month is not None and not 1 <= payload.day_of_month <= 31:
            raise ValueError("day_of_month must be 1..31.")
        if payload.day_of_week is not None and not 0 <= payload.day_of_week <= 6:
            raise ValueError("day_of_week must be 0..6.")
        payload.description = payload.description.strip() if payload.description else None

        src = payload.src_account_id
        dest = payload.dest_account_id
        if payload.kind == "income" and (dest is None or src is not None):
            raise ValueError(
                "Income schedules require dest_account_id and must not set src_account_id."
            )
        if payload.kind == "expense" and (src is None or dest is not None):
            raise ValueError(
                "Expense schedules require src_account_id and must not set dest_account_id."
            )
        if payload.kind == "transfer" and (src is None or dest is None or src == dest):
            raise ValueError(
                "Transfer schedules require distinct src_account_id and dest_account_id."
            )
        return payload


class ScheduleResponse(BaseModel):
    id: int
    name: str
    kind: str
    amount_cents: int
    src_account_id: int | None = None
    dest_account_id: int | None = None
    start_date: date
    end_date: date | None = None
    frequency: str
    interval: int
    day_of_month: int | None = None
    day_of_week: int | None = None
    description: str | None = None
    is_active: bool
    created_at: datetime | None = None


class RevisionPayload(BaseModel):
    schedule_id: int
    effective_date: date
    amount_cents: int
    description: str | None = None

    @classmethod
    def validate_payload(cls, payload: "RevisionPayload") -> "RevisionPayload":
        if payload.amount_cents <= 0:
            raise ValueError("amount_cents must be greater than zero.")
        payload.description = payload.description.strip() if payload.description else None
        return payload


class RevisionResponse(BaseModel):
    id: int
    schedule_id: int
    schedule_name: str | None = None
    effective_date: date
    amount_cents: int
    description: str | None = None
    created_at: datetime | None = None


class EntryPayload(BaseModel):
    entry_date: date
    name: str
    amount_cents: int
    src_account_id: int | None = None
    dest_account_id: int | None = None
    schedule_id: int | None = None
    description: str | None = None

    @classmethod
    def validate_payload(cls, payload: "EntryPayload") -> "EntryPayload":
        payload.name = payload.name.strip()
        if not payload.name:
            raise ValueError("Entry name required.")
        if payload.amount_cents <= 0:
            raise ValueError("amount_cents must be greater than zero.")
        if payload.src_account_id is None and payload.dest_account_id is None:
            raise ValueError("Set src_account_id and/or dest_account_id.")
        if payload.src_account_id is not None and payload.src_account_id == payload.dest_account_id:
            raise ValueError("src_account_id and dest_account_id must differ.")
        payload.description = payload.description.strip() if payload.description else None
        return payload


class EntryResponse(EntryPayload):
    id: int
    created_at: datetime | None = None


class OccurrenceResponse(BaseModel):
    schedule_id: int
    date: date
    kind: str
    name: str
    amount_cents: int
    src_account_id: int | None = None
    dest_account_id: int | None = None
    description: str | None = None


class BalanceResponse(BaseModel):
    account_id: int
    account_name: str
    opening_date: date
    opening_balance_cents: int
    delta_cents: int
    balance_cents: int
    is_liability: bool
    is_interest_bearing: bool
    interest_apr_bps: int
    interest_compound: str
    exclude_from_dashboard: bool


class AccountSeriesResponse(BaseModel):
    account_id: int
    name: str
    is_liability: bool
    is_interest_bearing: bool
    interest_apr_bps: int
    interest_compound: str
    exclude_from_dashboard: bool
    balance_cents: list[int]


class SeriesResponse(BaseModel):
    mode: str
    from_date: date
    to_date: date
    step_days: int
    include_interest: bool
    dates: list[date]
    total_cents: list[int]
    accounts: list[AccountSeriesResponse]


def parse_iso_date(value: str | None, field: str) -> date:
    if value is None or not ISO_DATE_RE.match(value):
        raise ValueError(f"{field} must be an ISO date YYYY-MM-DD")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f"{field} is not a valid calendar date") from exc


def parse_step_days(value: str | None) -> int:
    if value is None or not value.strip():
        return DEFAULT_STEP_DAYS
    digits = value.strip()
    if not (digits.isascii() and digits.isdigit()):
        raise ValueError("step_days must be an integer")
    return int(digits)


def parse_flag(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in TRUTHY_VALUES


def account_from_row(row) -> Account:
    return Account(
        id=row["id"],
        name=row["name"],
        opening_date=row["opening_date"],
        opening_balance_cents=row["opening_balance_cents"],
        is_liability=bool(row["is_liability"]),
        is_interest_bearing=bool(row["is_interest_bearing"]),
        interest_apr_bps=row["interest_apr_bps"] or 0,
        interest_compound=row["interest_compound"] or "daily",
        exclude_from_dashboard=bool(row["exclude_from_dashboard"]),
        archived_at=row["archived_at"],
        description=row["description"],
    )


def schedule_from_row(row) -> Schedule:
    return Schedule(
        id=row["id"],
        name=row["name"],
        kind=row["kind"],
        amount_cents=row["amount_cents"],
        start_date=row["start_date"],
        frequency=row["frequency"],
        interval=row["interval"] or 1,
        src_account_id=row["src_account_id"],
        dest_account_id=row["dest_account_id"],
        end_date=row["end_date"],
        day_of_month=row["day_of_month"],
        day_of_week=row["day_of_week"],
        is_active=bool(row["is_active"]),
        description=row["description"],
    )


def revision_from_row(row) -> ScheduleRevision:
    return ScheduleRevision(
        id=row["id"],
        schedule_id=row["schedule_id"],
        effective_date=row["effective_date"],
        amount_cents=row["amount_cents"],
        description=row["description"],
    )


def entry_from_row(row) -> Entry:
    return Entry(
        id=row["id"],
        entry_date=row["entry_date"],
        name=row["name"],
        amount_cents=row["amount_cents"],
        src_account_id=row["src_account_id"],
        dest_account_id=row["dest_account_id"],
        schedule_id=row["schedule_id"],
        description=row["description"],
    )


def load_snapshot(conn) -> LedgerSnapshot:
    account_rows = conn.execute(select(accounts).order_by(accounts.c.id)).mappings().all()
    schedule_rows = conn.execute(select(schedules).order_by(schedules.c.id)).mappings().all()
    revision_rows = conn.execute(
        select(schedule_revisions).order_by(schedule_revisions.c.id)
    ).mappings().all()
    entry_rows = conn.execute(select(entries).order_by(entries.c.id)).mappings().all()
    return LedgerSnapshot(
        accounts=tuple(account_from_row(row) for row in account_rows),
        schedules=tuple(schedule_from_row(row) for row in schedule_rows),
        revisions=tuple(revision_from_row(row) for row in revision_rows),
        entries=tuple(entry_from_row(row) for row in entry_rows),
    )


def read_snapshot(failure_detail: str) -> LedgerSnapshot:
    try:
        with engine.begin() as conn:
            return load_snapshot(conn)
    except SQLAlchemyError as exc:
        logger.exception("Snapshot read failed: %s", failure_detail)
        raise HTTPException(status_code=500, detail=failure_detail) from exc


def account_exists(conn, account_id: int | None) -> bool:
    if account_id is None:
        return True
    return conn.execute(select(accounts.c.id).where(accounts.c.id == account_id)).first() is not None


def schedule_exists(conn, schedule_id: int | None) -> bool:
    if schedule_id is None:
        return True
    return (
        conn.execute(select(schedules.c.id).where(schedules.c.id == schedule_id)).first()
        is not None
    )


def account_response(row) -> AccountResponse:
    return AccountResponse(
        id=row["id"],
        name=row["name"],
        opening_date=row["opening_date"],
        opening_balance_cents=row["opening_balance_cents"],
        description=row["description"],
        archived_at=row["archived_at"],
        is_liability=bool(row["is_liability"]),
        is_interest_bearing=bool(row["is_interest_bearing"]),
        interest_apr_bps=row["interest_apr_bps"],
        interest_compound=row["interest_compound"],
        exclude_from_dashboard=bool(row["exclude_from_dashboard"]),
        created_at=row["created_at"],
    )


def schedule_response(row) -> ScheduleResponse:
    return ScheduleResponse(
        id=row["id"],
        name=row["name"],
        kind=row["kind"],
        amount_cents=row["amount_cents"],
        src_account_id=row["src_account_id"],
        dest_account_id=row["dest_account_id"],
        start_date=row["start_date"],
        end_date=row["end_date"],
        frequency=row["frequency"],
        interval=row["interval"],
        day_of_month=row["day_of_month"],
        day_of_week=row["day_of_week"],
        description=row["description"],
        is_active=bool(row["is_active"]),
        created_at=row["created_at"],
    )


def entry_response(row) -> EntryResponse:
    return EntryResponse(
        id=row["id"],
        entry_date=row["entry_date"],
        name=row["name"],
        amount_cents=row["amount_cents"],
        src_account_id=row["src_account_id"],
        dest_account_id=row["dest_account_id"],
        schedule_id=row["schedule_id"],
        description=row["description"],
        created_at=row["created_at"],
    )


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/meta")
def meta() -> dict:
    return {
        "enums": {
            "schedule_kind": sorted(SUPPORTED_KINDS),
            "schedule_frequency": ["daily", "weekly", "monthly", "yearly"],
            "interest_compound": sorted(SUPPORTED_COMPOUNDS),
            "balance_mode": sorted(SUPPORTED_MODES),
        },
        "limits": {
            "max_series_points": MAX_POINTS,
            "min_step_days": MIN_STEP_DAYS,
            "max_step_days": MAX_STEP_DAYS,
        },
    }


@app.get("/accounts", response_model=list[AccountResponse])
def list_accounts() -> list[AccountResponse]:
    with engine.begin() as conn:
        rows = conn.execute(
            select(accounts).order_by(accounts.c.archived_at.is_not(None), accounts.c.name)
        ).mappings().all()
    return [account_response(row) for row in rows]


@app.post("/accounts", response_model=AccountResponse)
def create_account(payload: AccountPayload) -> AccountResponse:
    try:
        payload = AccountPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    stmt = insert(accounts).values(**payload.model_dump()).returning(*accounts.c)
    with engine.begin() as conn:
        row = conn.execute(stmt).mappings().first()

    if not row:
        raise HTTPException(status_code=500, detail="Failed to create account.")
    return account_response(row)


@app.put("/accounts/{account_id}", response_model=AccountResponse)
def update_account(account_id: int, payload: AccountPayload) -> AccountResponse:
    try:
        payload = AccountPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    stmt = (
        update(accounts)
        .where(accounts.c.id == account_id)
        .values(**payload.model_dump())
        .returning(*accounts.c)
    )
    with engine.begin() as conn:
        row = conn.execute(stmt).mappings().first()

    if not row:
        raise HTTPException(status_code=404, detail="Account not found.")
    return account_response(row)


@app.delete("/accounts/{account_id}")
def delete_account(account_id: int) -> dict:
    stmt = accounts.delete().where(accounts.c.id == account_id)
    try:
        with engine.begin() as conn:
            result = conn.execute(stmt)
            if result.rowcount == 0:
                raise HTTPException(status_code=404, detail="Account not found.")
    except IntegrityError as exc:
        raise HTTPException(status_code=409, detail="Account is in use.") from exc
    return {"status": "deleted"}


@app.get("/schedules", response_model=list[ScheduleResponse])
def list_schedules() -> list[ScheduleResponse]:
    with engine.begin() as conn:
        rows = conn.execute(
            select(schedules).order_by(
                schedules.c.is_active.desc(), schedules.c.start_date.desc(), schedules.c.name
            )
        ).mappings().all()
    return [schedule_response(row) for row in rows]


@app.post("/schedules", response_model=ScheduleResponse)
def create_schedule(payload: SchedulePayload) -> ScheduleResponse:
    try:
        payload = SchedulePayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        if not account_exists(conn, payload.src_account_id) or not account_exists(
            conn, payload.dest_account_id
        ):
            raise HTTPException(status_code=404, detail="Account not found.")
        row = conn.execute(
            insert(schedules).values(**payload.model_dump()).returning(*schedules.c)
        ).mappings().first()

    if not row:
        raise HTTPException(status_code=500, detail="Failed to create schedule.")
    return schedule_response(row)


@app.put("/schedules/{schedule_id}", response_model=ScheduleResponse)
def update_schedule(schedule_id: int, payload: SchedulePayload) -> ScheduleResponse:
    try:
        payload = SchedulePayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        if not account_exists(conn, payload.src_account_id) or not account_exists(
            conn, payload.dest_account_id
        ):
            raise HTTPException(status_code=404, detail="Account not found.")
        row = conn.execute(
            update(schedules)
            .where(schedules.c.id == schedule_id)
            .values(**payload.model_dump())
            .returning(*schedules.c)
        ).mappings().first()

    if not row:
        raise HTTPException(status_code=404, detail="Schedule not found.")
    return schedule_response(row)


@app.delete("/schedules/{schedule_id}")
def delete_schedule(schedule_id: int) -> dict:
    with engine.begin() as conn:
        if not conn.execute(select(schedules.c.id).where(schedules.c.id == schedule_id)).first():
            raise HTTPException(status_code=404, detail="Schedule not found.")
        conn.execute(
            schedule_revisions.delete().where(schedule_revisions.c.schedule_id == schedule_id)
        )
        conn.execute(
            update(entries).where(entries.c.schedule_id == schedule_id).values(schedule_id=None)
        )
        conn.execute(schedules.delete().where(schedules.c.id == schedule_id))
    return {"status": "deleted"}


@app.get("/revisions", response_model=list[RevisionResponse])
def list_revisions(schedule_id: int | None = None) -> list[RevisionResponse]:
    stmt = (
        select(schedule_revisions, schedules.c.name.label("schedule_name"))
        .join(schedules, schedules.c.id == schedule_revisions.c.schedule_id)
        .order_by(schedule_revisions.c.schedule_id, schedule_revisions.c.effective_date)
    )
    if schedule_id is not None:
        stmt = stmt.where(schedule_revisions.c.schedule_id == schedule_id)
    with engine.begin() as conn:
        rows = conn.execute(stmt).mappings().all()
    return [RevisionResponse(**row) for row in rows]


@app.post("/revisions", response_model=RevisionResponse)
def create_revision(payload: RevisionPayload) -> RevisionResponse:
    try:
        payload = RevisionPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        schedule_name = conn.execute(
            select(schedules.c.name).where(schedules.c.id == payload.schedule_id)
        ).scalar_one_or_none()
        if schedule_name is None:
            raise HTTPException(status_code=404, detail="Schedule not found.")
        row = conn.execute(
            insert(schedule_revisions)
            .values(**payload.model_dump())
            .returning(*schedule_revisions.c)
        ).mappings().first()

    if not row:
        raise HTTPException(status_code=500, detail="Failed to create revision.")
    return RevisionResponse(schedule_name=schedule_name, **row)


@app.delete("/revisions/{revision_id}")
def delete_revision(revision_id: int) -> dict:
    stmt = schedule_revisions.delete().where(schedule_revisions.c.id == revision_id)
    with engine.begin() as conn:
        result = conn.execute(stmt)
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail="Revision not found.")
    return {"status": "deleted"}


@app.get("/entries", response_model=list[EntryResponse])
def list_entries(account_id: int | None = None) -> list[EntryResponse]:
    stmt = select(entries).order_by(entries.c.entry_date.desc(), entries.c.id.desc())
    if account_id is not None:
        stmt = stmt.where(
            (entries.c.src_account_id == account_id) | (entries.c.dest_account_id == account_id)
        )
    with engine.begin() as conn:
        rows = conn.execute(stmt).mappings().all()
    return [entry_response(row) for row in rows]


def _check_entry_references(conn, payload: EntryPayload) -> None:
    if not account_exists(conn, payload.src_account_id) or not account_exists(
        conn, payload.dest_account_id
    ):
        raise HTTPException(status_code=404, detail="Account not found.")
    if not schedule_exists(conn, payload.schedule_id):
        raise HTTPException(status_code=404, detail="Schedule not found.")


@app.post("/entries", response_model=EntryResponse)
def create_entry(payload: EntryPayload) -> EntryResponse:
    try:
        payload = EntryPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        _check_entry_references(conn, payload)
        row = conn.execute(
            insert(entries).values(**payload.model_dump()).returning(*entries.c)
        ).mappings().first()

    if not row:
        raise HTTPException(status_code=500, detail="Failed to create entry.")
    return entry_response(row)


@app.put("/entries/{entry_id}", response_model=EntryResponse)
def update_entry(entry_id: int, payload: EntryPayload) -> EntryResponse:
    try:
        payload = EntryPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        _check_entry_references(conn, payload)
        row = conn.execute(
            update(entries)
            .where(entries.c.id == entry_id)
            .values(**payload.model_dump())
            .returning(*entries.c)
        ).mappings().first()

    if not row:
        raise HTTPException(status_code=404, detail="Entry not found.")
    return entry_response(row)


@app.delete("/entries/{entry_id}")
def delete_entry(entry_id: int) -> dict:
    stmt = entries.delete().where(entries.c.id == entry_id)
    with engine.begin() as conn:
        result = conn.execute(stmt)
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail="Entry not found.")
    return {"status": "deleted"}


@app.get("/occurrences", response_model=list[OccurrenceResponse])
def list_occurrences(
    from_date: str | None = Query(None),
    to_date: str | None = Query(None),
) -> list[OccurrenceResponse]:
    try:
        window_start = parse_iso_date(from_date, "from_date")
        window_end = parse_iso_date(to_date, "to_date")
        if window_end < window_start:
            raise ValueError("to_date must be >= from_date")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    snapshot = read_snapshot("Failed to compute occurrences.")
    occurrences = expand_schedules(
        snapshot.active_schedules(), window_start, window_end, snapshot.revisions
    )
    return [
        OccurrenceResponse(
            schedule_id=occurrence.schedule_id,
            date=occurrence.date,
            kind=occurrence.kind,
            name=occurrence.name,
            amount_cents=occurrence.amount_cents,
            src_account_id=occurrence.src_account_id,
            dest_account_id=occurrence.dest_account_id,
            description=occurrence.description,
        )
        for occurrence in occurrences
    ]


@app.get("/balances", response_model=list[BalanceResponse])
def balances(
    as_of: str | None = Query(None),
    mode: str | None = Query(None),
    from_date: str | None = Query(None),
    account_id: int | None = None,
) -> list[BalanceResponse]:
    try:
        as_of_date = parse_iso_date(as_of, "as_of")
        resolved_mode = normalize_mode(mode)
        start_date = as_of_date
        # from_date only bounds projected occurrences
        if resolved_mode == MODE_PROJECTED and from_date is not None and from_date.strip():
            start_date = parse_iso_date(from_date, "from_date")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    snapshot = read_snapshot("Failed to compute balances.")
    points = balances_as_of(
        snapshot,
        as_of_date,
        mode=resolved_mode,
        from_date=start_date,
        account_id=account_id,
    )
    if account_id is not None and not points:
        raise HTTPException(status_code=404, detail="Account not found.")

    active = snapshot.active_accounts()
    responses: list[BalanceResponse] = []
    for point in points:
        account = active[point.account_id]
        responses.append(
            BalanceResponse(
                account_id=point.account_id,
                account_name=point.name,
                opening_date=account.opening_date,
                opening_balance_cents=point.opening_balance_cents,
                delta_cents=point.delta_cents,
                balance_cents=point.balance_cents,
                is_liability=account.is_liability,
                is_interest_bearing=account.is_interest_bearing,
                interest_apr_bps=account.interest_apr_bps,
                interest_compound=account.interest_compound,
                exclude_from_dashboard=account.exclude_from_dashboard,
            )
        )
    return responses


@app.get("/balances/series", response_model=SeriesResponse)
def balances_series(
    from_date: str | None = Query(None),
    to_date: str | None = Query(None),
    mode: str | None = Query(None),
    step_days: str | None = Query(None),
    include_interest: str | None = Query(None),
) -> SeriesResponse:
    with_interest = parse_flag(include_interest)
    try:
        resolved_mode = normalize_mode(mode, default=MODE_PROJECTED)
        start_date = parse_iso_date(from_date, "from_date")
        end_date = parse_iso_date(to_date, "to_date")
        resolved_step = parse_step_days(step_days)
        validate_series_request(
            start_date, end_date, resolved_mode, resolved_step, with_interest
        )
    except SeriesLimitError as exc:
        raise HTTPException(
            status_code=400,
            detail={"message": str(exc), "max_points": exc.max_points, "points": exc.points},
        ) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    snapshot = read_snapshot("Failed to compute balances series.")
    series = build_series(
        snapshot,
        start_date,
        end_date,
        mode=resolved_mode,
        step_days=resolved_step,
        include_interest=with_interest,
    )

    return SeriesResponse(
        mode=series.mode,
        from_date=series.from_date,
        to_date=series.to_date,
        step_days=series.step_days,
        include_interest=series.include_interest,
        dates=series.dates,
        total_cents=series.totals,
        accounts=[
            AccountSeriesResponse(
                account_id=account.account_id,
                name=account.name,
                is_liability=account.is_liability,
                is_interest_bearing=account.is_interest_bearing,
                interest_apr_bps=account.interest_apr_bps,
                interest_compound=account.interest_compound,
                exclude_from_dashboard=account.exclude_from_dashboard,
                balance_cents=account.values,
            )
            for account in series.accounts
        ],
    )
