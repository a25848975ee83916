"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper. UserStore is the repository;
_row_to_user / _row_to_reset_token are the mappers. Service and route code
never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Reset-token redemption is a single conditional UPDATE guarded by
  "consumed = 0 AND expires_at > now", executed in the same transaction as
  the password update. Two concurrent redemptions of one token serialize on
  the row write; only one sees rowcount == 1. No in-process lock is used
  because several service instances may share the database.

Layer rule: no imports from api/, resource_api/, or core/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Float, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from auth.models import ResetToken, User

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
    Column("password_hash", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
)

_reset_tokens = Table(
    "reset_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token_hash", String(64), nullable=False, unique=True),  # SHA-256 hex
    Column("email", String(255), nullable=False, index=True),
    Column("expires_at", Float, nullable=False),  # epoch seconds, UTC
    Column("consumed", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)

# Outcomes of redeem_reset_token(). The manager maps the failures to errors.
REDEEMED = "redeemed"
TOKEN_NOT_FOUND = "not_found"
TOKEN_EXPIRED = "expired"
TOKEN_CONSUMED = "consumed"


class UserVanishedError(Exception):
    """The reset token's email no longer matches a user. Rolls the redemption back."""


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers never block on the single writer.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User and ResetToken entities.

    Usage:
        store = UserStore("sqlite:///authgate.db")
        user_id = store.create_user(User(name="A", email="a@x.com", password_hash=hasher.hash("secret1")))
        user = store.get_by_email("a@x.com")
        store.close()

    The engine's connection pool is the only shared mutable resource; it is
    safe for concurrent use from FastAPI's worker threads.
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        The unique index is the source of truth for uniqueness -- a
        check-then-insert in Python would race with a concurrent signup.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.insert().values(
                    name=user.name,
                    email=user.email,
                    password_hash=user.password_hash,
                    created_at=_now_iso(),
                )
            )
            return result.inserted_primary_key[0]

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact (already normalized) email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self, limit: int = 50) -> list[User]:
        """Return users newest first, capped at limit."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _users.select().order_by(_users.c.created_at.desc(), _users.c.id.desc()).limit(limit)
            ).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_name(self, user_id: int, name: str) -> User | None:
        """Set a user's display name. Returns the updated user, or None if user_id was not found."""
        with self.engine.begin() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(name=name))
            if result.rowcount == 0:
                return None
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row)

    # ------------------------------------------------------------------
    # Reset tokens
    # ------------------------------------------------------------------

    def create_reset_token(self, token: ResetToken) -> int:
        """Persist a reset token, superseding any outstanding ones for the same email.

        Delete and insert share one transaction so an email never has two
        redeemable tokens at once.
        """
        with self.engine.begin() as conn:
            conn.execute(
                _reset_tokens.delete().where(
                    (_reset_tokens.c.email == token.email) & (_reset_tokens.c.consumed == 0)
                )
            )
            result = conn.execute(
                _reset_tokens.insert().values(
                    token_hash=token.token_hash,
                    email=token.email,
                    expires_at=token.expires_at,
                    consumed=0,
                    created_at=_now_iso(),
                )
            )
            return result.inserted_primary_key[0]

    def get_reset_token(self, token_hash: str) -> ResetToken | None:
        with self.engine.connect() as conn:
            row = conn.execute(_reset_tokens.select().where(_reset_tokens.c.token_hash == token_hash)).fetchone()
        return _row_to_reset_token(row) if row is not None else None

    def redeem_reset_token(self, token_hash: str, password_hash: str, now: float) -> str:
        """Atomically consume a reset token and set the owner's password hash.

        The conditional UPDATE runs first, so the transaction's first
        statement takes the write lock; a concurrent redeemer waits and then
        matches zero rows. If the password update finds no user,
        UserVanishedError rolls the consumption back.

        Returns REDEEMED, or one of TOKEN_NOT_FOUND / TOKEN_EXPIRED /
        TOKEN_CONSUMED describing why nothing changed.
        """
        with self.engine.begin() as conn:
            claimed = conn.execute(
                _reset_tokens.update()
                .where(
                    (_reset_tokens.c.token_hash == token_hash)
                    & (_reset_tokens.c.consumed == 0)
                    & (_reset_tokens.c.expires_at > now)
                )
                .values(consumed=1)
            )
            if claimed.rowcount == 1:
                email = conn.execute(
                    select(_reset_tokens.c.email).where(_reset_tokens.c.token_hash == token_hash)
                ).scalar_one()
                updated = conn.execute(
                    _users.update().where(_users.c.email == email).values(password_hash=password_hash)
                )
                if updated.rowcount != 1:
                    raise UserVanishedError(email)
                return REDEEMED

            row = conn.execute(_reset_tokens.select().where(_reset_tokens.c.token_hash == token_hash)).fetchone()

        if row is None:
            return TOKEN_NOT_FOUND
        if now >= row.expires_at:
            return TOKEN_EXPIRED
        return TOKEN_CONSUMED

    def purge_expired_reset_tokens(self, now: float) -> int:
        """Delete expired tokens. Returns number of rows removed."""
        with self.engine.begin() as conn:
            result = conn.execute(_reset_tokens.delete().where(_reset_tokens.c.expires_at <= now))
        return result.rowcount

    def count_reset_tokens(self, email: str) -> int:
        """Return the number of stored reset tokens for email, consumed or not."""
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_reset_tokens).where(_reset_tokens.c.email == email)
            ).scalar()
        return result or 0

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
        password_hash=row.password_hash,
        created_at=row.created_at,
    )


def _row_to_reset_token(row) -> ResetToken:
    return ResetToken(
        id=row.id,
        token_hash=row.token_hash,
        email=row.email,
        expires_at=row.expires_at,
        consumed=bool(row.consumed),
        created_at=row.created_at,
    )
