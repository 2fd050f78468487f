"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper.
AccountStore is the repository; _row_to_account is the mapper.
Route, gate and identity code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Uniqueness:
  email and federated_id carry UNIQUE constraints. SQLite (and Postgres)
  treat NULLs as distinct, so any number of password-only accounts may have
  federated_id = NULL while a real federated id can only ever be held once.
  The constraint is what makes concurrent federated logins safe: the loser
  of a race gets AccountConflictError and IdentityService retries its
  lookup instead of creating a duplicate.

  The CHECK constraint mirrors the rule that an account must be reachable
  by password or federated identity. save() enforces it in Python first so
  callers get a clear ValueError instead of an IntegrityError.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import Account, Role

_DEFAULT_DB_URL = "sqlite:///lostfound_auth.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text),  # NULL for federated-only accounts
    Column("federated_id", String(255), unique=True),  # NULL until linked
    Column("name", String(255)),
    Column("role", String(16), nullable=False, server_default=Role.USER.value),
    Column("email_verified", Boolean, nullable=False, server_default=text("0")),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    CheckConstraint(
        "password_hash IS NOT NULL OR federated_id IS NOT NULL",
        name="ck_accounts_has_credential",
    ),
)


class AccountConflictError(Exception):
    """Raised by save() when a write would break email or federated_id uniqueness."""


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers never block behind the gate's writers.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account entities -- the sole source of truth for identity.

    Usage:
        store = AccountStore("sqlite:///:memory:")
        saved = store.save(Account(email="a@x.com", password_hash=hash_password("pw")))
        store.find_by_email("a@x.com")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_by_email(self, email: str) -> Account | None:
        """Look up an account by exact email (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == email)).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_by_federated_id(self, federated_id: str) -> Account | None:
        """Look up an account by its linked identity-provider subject. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.federated_id == federated_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def exists_by_email(self, email: str) -> bool:
        with self.engine.connect() as conn:
            found = conn.execute(select(_accounts.c.id).where(_accounts.c.email == email).limit(1)).first()
        return found is not None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save(self, account: Account) -> Account:
        """Insert (id is None) or update (id set) an account in one transaction.

        Returns a copy carrying the assigned id and fresh timestamps; the
        argument itself is not mutated.

        Raises:
            ValueError: the account has neither password_hash nor federated_id,
                or an update targets an id that does not exist.
            AccountConflictError: email or federated_id already belongs to
                another account.
        """
        if not account.password_hash and not account.federated_id:
            raise ValueError("An account needs a password hash or a federated id.")

        now = _now_iso()
        values = {
            "email": account.email,
            "password_hash": account.password_hash,
            "federated_id": account.federated_id or None,
            "name": account.name,
            "role": Role(account.role).value,
            "email_verified": bool(account.email_verified),
            "updated_at": now,
        }
        created_at = account.created_at
        try:
            with self.engine.begin() as conn:
                if account.id is None:
                    created_at = now
                    result = conn.execute(_accounts.insert().values(created_at=created_at, **values))
                    account_id = result.inserted_primary_key[0]
                else:
                    result = conn.execute(_accounts.update().where(_accounts.c.id == account.id).values(**values))
                    if result.rowcount == 0:
                        raise ValueError(f"No account with id {account.id}.")
                    account_id = account.id
        except IntegrityError as exc:
            raise AccountConflictError(f"Account for {account.email!r} conflicts with an existing record.") from exc

        return replace(
            account,
            id=account_id,
            federated_id=values["federated_id"],
            created_at=created_at,
            updated_at=now,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by GET /health."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        federated_id=row.federated_id,
        name=row.name,
        role=Role(row.role),
        email_verified=bool(row.email_verified),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
