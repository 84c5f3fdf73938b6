"""
auth/store.py -- SQLAlchemy Core persistence layer for local identities.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user / _row_to_cleanup are the mappers.
Route and orchestrator code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Remote linkage invariant:
  users.remote_id and users.remote_secret_enc are both NULL or both set. The
  CHECK constraint below makes a half-linked row impossible to write, whatever
  the caller does. The orchestrator writes both in the same insert.

Reconciliation outbox:
  remote_cleanup holds remote accounts that changed on the platform without a
  matching local write (e.g. signup succeeded, local insert failed), and
  signups whose outcome is unknown (remote_id NULL). Rows are
  appended by chat/sync.py and listed by `python main.py cleanups`.

Layer rule: no imports from api/ or chat/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    text,
)
from sqlalchemy.engine import Engine

from auth.models import RemoteCleanup, User

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
    Column("hashed_password", Text),
    Column("api_key_hash", String(64), unique=True),  # HMAC-SHA256 hex
    Column("remote_id", Integer, unique=True),  # remote platform user id
    Column("remote_secret_enc", Text),  # Fernet token of the remote password
    Column("created_at", String(32), nullable=False),
    Column("last_login", Text),
    CheckConstraint(
        "(remote_id IS NULL) = (remote_secret_enc IS NULL)",
        name="ck_users_remote_linkage",
    ),
)

_remote_cleanup = Table(
    "remote_cleanup",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("remote_id", Integer),  # NULL for ambiguous_signup
    Column("login", String(255), nullable=False),
    Column("remote_secret_enc", Text),
    Column("reason", String(40), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("resolved_at", String(32)),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User and RemoteCleanup entities.

    Usage:
        store = UserStore("sqlite:///chatlink.db")
        uid = store.create_user(User(name="Ann", email="ann@example.com", hashed_password=...))
        user = store.get_by_email("ann@example.com")
        store.close()
    """

    # Columns update_user() may touch. Anything else raises ValueError.
    _UPDATABLE_FIELDS: set = {"name", "email", "hashed_password", "api_key_hash", "remote_id", "remote_secret_enc"}

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email (or remote_id, or
        api_key_hash) already exists, or if the remote linkage is half-set.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    name=user.name,
                    email=user.email,
                    hashed_password=user.hashed_password,
                    api_key_hash=user.api_key_hash,
                    remote_id=user.remote_id,
                    remote_secret_enc=user.remote_secret_enc,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_remote_id(self, remote_id: int) -> User | None:
        """Look up a user by the id the remote platform assigned to it."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.remote_id == remote_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_api_key_hash(self, key_hash: str) -> User | None:
        """Look up a user by the HMAC hash of their API key. O(1) via UNIQUE index."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.api_key_hash == key_hash)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.id.desc())).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: see _UPDATABLE_FIELDS. Unknown fields raise
        ValueError. Raises IntegrityError on a duplicate email or a
        half-linked remote linkage.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - self._UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if not fields:
            return False
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_user(self, user_id: int) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def update_last_login(self, user_id: int) -> None:
        """Stamp the current UTC timestamp as last_login for the given user."""
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=_now_iso()))
            conn.commit()

    # ------------------------------------------------------------------
    # Reconciliation outbox
    # ------------------------------------------------------------------

    def enqueue_remote_cleanup(self, entry: RemoteCleanup) -> int:
        """Append an outbox entry and return its ID."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _remote_cleanup.insert().values(
                    remote_id=entry.remote_id,
                    login=entry.login,
                    remote_secret_enc=entry.remote_secret_enc,
                    reason=entry.reason,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def list_pending_cleanups(self) -> list[RemoteCleanup]:
        """Return unresolved outbox entries, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _remote_cleanup.select()
                .where(_remote_cleanup.c.resolved_at.is_(None))
                .order_by(_remote_cleanup.c.id)
            ).fetchall()
        return [_row_to_cleanup(r) for r in rows]

    def find_pending_cleanup(self, login: str, reason: str) -> RemoteCleanup | None:
        """Return the oldest unresolved entry for login with the given reason, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _remote_cleanup.select()
                .where(
                    (_remote_cleanup.c.login == login)
                    & (_remote_cleanup.c.reason == reason)
                    & (_remote_cleanup.c.resolved_at.is_(None))
                )
                .order_by(_remote_cleanup.c.id)
            ).first()
        return _row_to_cleanup(row) if row is not None else None

    def resolve_cleanup(self, entry_id: int) -> bool:
        """Mark an outbox entry resolved. Returns False if not found or already resolved."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _remote_cleanup.update()
                .where((_remote_cleanup.c.id == entry_id) & (_remote_cleanup.c.resolved_at.is_(None)))
                .values(resolved_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

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
        hashed_password=row.hashed_password,
        api_key_hash=row.api_key_hash,
        remote_id=row.remote_id,
        remote_secret_enc=row.remote_secret_enc,
        created_at=row.created_at,
        last_login=row.last_login,
    )


def _row_to_cleanup(row) -> RemoteCleanup:
    return RemoteCleanup(
        id=row.id,
        remote_id=row.remote_id,
        login=row.login,
        remote_secret_enc=row.remote_secret_enc,
        reason=row.reason,
        created_at=row.created_at,
        resolved_at=row.resolved_at,
    )
