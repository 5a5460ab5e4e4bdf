"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper. CredentialStore is the repository for
users, OTPs and refresh tokens; _row_to_user / _row_to_otp /
_row_to_refresh_token are the mappers. Services never touch SQL directly.

Every method is a single statement on a connection borrowed from the pool for
the duration of the call. There are no multi-statement transactions: the
invariants in this module rely on per-row atomicity only.

Security:
  All queries use bound parameters. No f-strings in SQL.

Timestamps:
  Stored as fixed-width UTC strings (YYYY-MM-DDTHH:MM:SS.ffffffZ) so that
  lexical order in SQL equals chronological order. This is what lets
  find_valid_otp() compare expires_at and order by created_at in the query
  itself on any backend.

DB path: billing_auth.db at the project root unless DATABASE_URL is set.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, create_engine, event, select, text
from sqlalchemy.engine import Engine

from auth.models import ROLE_ADMIN, OtpRecord, RefreshToken, User

_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("password", String(255), nullable=False),  # bcrypt hash
    Column("role", String(20), nullable=False, server_default="User"),
    Column("is_verified", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)

_otps = Table(
    "otps",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer),  # NULL allowed -- back-reference only
    Column("email", String(255), nullable=False),
    Column("otp_code", String(6), nullable=False),
    Column("type", String(20), nullable=False, server_default="register"),
    Column("expires_at", String(32), nullable=False),
    Column("used", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Index("ix_otps_email_code", "email", "otp_code"),
)

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False),
    Column("token", String(512), nullable=False, unique=True),  # the signed JWT itself
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked by writers.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_db(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(_TS_FORMAT)


def _from_db(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.strptime(value, _TS_FORMAT).replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for User, OtpRecord and RefreshToken entities.

    Usage:
        store = CredentialStore()
        uid = store.create_user(User(name="Ann", email="ann@x.com", password=hash_password("pw")))
        user = store.find_by_email("ann@x.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args, pool_pre_ping=True)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def find_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email).limit(1)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id).limit(1)).fetchone()
        return _row_to_user(row) if row is not None else None

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        AdminProvisioning checks first and treats IntegrityError as the race
        where a concurrent request created the same email in between.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    name=user.name,
                    email=user.email,
                    password=user.password,
                    role=user.role,
                    is_verified=1 if user.is_verified else 0,
                    created_at=_to_db(_utcnow()),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def verify_user_email(self, user_id: int) -> bool:
        """Set is_verified on a user. Returns False if the user does not exist."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(is_verified=1))
            conn.commit()
        return result.rowcount > 0

    def has_admin(self) -> bool:
        """Return True if any user holds the Admin role."""
        with self.engine.connect() as conn:
            row = conn.execute(select(_users.c.id).where(_users.c.role == ROLE_ADMIN).limit(1)).fetchone()
        return row is not None

    # ------------------------------------------------------------------
    # OTPs
    # ------------------------------------------------------------------

    def create_otp(self, otp: OtpRecord) -> int:
        """Insert a new OTP record and return its ID."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _otps.insert().values(
                    user_id=otp.user_id,
                    email=otp.email,
                    otp_code=otp.code,
                    type=otp.type,
                    expires_at=_to_db(otp.expires_at),
                    used=1 if otp.used else 0,
                    created_at=_to_db(otp.created_at or _utcnow()),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def find_valid_otp(self, email: str, code: str, now: datetime | None = None) -> OtpRecord | None:
        """Return the most recently created unused, unexpired OTP for (email, code).

        Several valid rows can coexist (e.g. two concurrent send-otp calls);
        the newest wins, with the higher id breaking created_at ties.
        """
        cutoff = _to_db(now or _utcnow())
        with self.engine.connect() as conn:
            row = conn.execute(
                _otps.select()
                .where(
                    (_otps.c.email == email)
                    & (_otps.c.otp_code == code)
                    & (_otps.c.used == 0)
                    & (_otps.c.expires_at > cutoff)
                )
                .order_by(_otps.c.created_at.desc(), _otps.c.id.desc())
                .limit(1)
            ).fetchone()
        return _row_to_otp(row) if row is not None else None

    def mark_otp_used(self, otp_id: int) -> bool:
        """Flag an OTP as consumed. Idempotent; returns False if the id is unknown."""
        with self.engine.connect() as conn:
            result = conn.execute(_otps.update().where(_otps.c.id == otp_id).values(used=1))
            conn.commit()
        return result.rowcount > 0

    def list_otps(self, email: str) -> list[OtpRecord]:
        """Return every OTP ever issued to an email, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _otps.select().where(_otps.c.email == email).order_by(_otps.c.created_at.desc(), _otps.c.id.desc())
            ).fetchall()
        return [_row_to_otp(r) for r in rows]

    # ------------------------------------------------------------------
    # Refresh tokens
    # ------------------------------------------------------------------

    def save_refresh_token(self, record: RefreshToken) -> int:
        """Persist an issued refresh token and return the row ID."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _refresh_tokens.insert().values(
                    user_id=record.user_id,
                    token=record.token,
                    expires_at=_to_db(record.expires_at),
                    created_at=_to_db(_utcnow()),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def find_refresh_token(self, token: str) -> RefreshToken | None:
        """Look up a refresh token row by the exact token string."""
        with self.engine.connect() as conn:
            row = conn.execute(_refresh_tokens.select().where(_refresh_tokens.c.token == token).limit(1)).fetchone()
        return _row_to_refresh_token(row) if row is not None else None

    def delete_refresh_token(self, token: str) -> int:
        """Delete any row matching the token. Returns the number of rows removed (0 is fine)."""
        with self.engine.connect() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.token == token))
            conn.commit()
        return result.rowcount

    def list_refresh_tokens(self, user_id: int) -> list[RefreshToken]:
        """Return all live refresh token rows for a user (one per session), newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _refresh_tokens.select()
                .where(_refresh_tokens.c.user_id == user_id)
                .order_by(_refresh_tokens.c.created_at.desc(), _refresh_tokens.c.id.desc())
            ).fetchall()
        return [_row_to_refresh_token(r) for r in rows]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        password=row.password,
        role=row.role,
        is_verified=bool(row.is_verified),
        created_at=_from_db(row.created_at),
    )


def _row_to_otp(row) -> OtpRecord:
    return OtpRecord(
        id=row.id,
        user_id=row.user_id,
        email=row.email,
        code=row.otp_code,
        type=row.type,
        expires_at=_from_db(row.expires_at),
        used=bool(row.used),
        created_at=_from_db(row.created_at),
    )


def _row_to_refresh_token(row) -> RefreshToken:
    return RefreshToken(
        id=row.id,
        user_id=row.user_id,
        token=row.token,
        expires_at=_from_db(row.expires_at),
        created_at=_from_db(row.created_at),
    )
