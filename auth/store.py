"""
auth/store.py -- SQLAlchemy Core persistence layer for identities and their credentials.

Pattern: Repository + Data Mapper.
IdentityStore is the repository; _row_to_identity / _row_to_record are the
mappers. The credential manager and routes never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Credential updates go through update_credentials(), which only accepts
  column names from a fixed whitelist.

Concurrency:
  update_credentials() is a single conditional UPDATE
  (WHERE id = :id AND status IS NOT NULL). There are no row locks: the last
  writer wins for the columns it writes, and a row deleted between a read and
  the write shows up as rowcount == 0, which callers turn into NotFoundError.

DB path: authn_identities.db in the working directory unless DATABASE_URL
says otherwise.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, select, text
from sqlalchemy.engine import Engine

from auth.models import PASSCODE_FIELD, PASSWORD_FIELD, CredentialRecord, Identity, IdentityCandidate, IdentityStatus

_DEFAULT_DB_URL = "sqlite:///authn_identities.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_identities = Table(
    "identities",
    _metadata,
    Column("id", String(255), primary_key=True),
    Column("slug", String(255), unique=True),  # NULL when the identity has no slug
    Column("email", String(320), nullable=False, index=True),  # contact point, not unique
    Column("label", String(255), nullable=False, server_default=""),
    Column("role", String(30), nullable=False, server_default="user"),
    Column("status", String(20), nullable=False, server_default="active"),
    Column("email_verified", Integer, nullable=False, server_default="0"),
    Column("password_hash", Text),  # tagged hash, see auth/hashing.py
    Column("passcode_hash", Text),  # tagged hash
    Column("created_at", String(32), nullable=False),
)

# Columns update_credentials() may write.
_CREDENTIAL_COLUMNS: frozenset = frozenset({PASSWORD_FIELD, PASSCODE_FIELD, "email_verified"})


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block during credential writes."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class IdentityStore:
    """Repository for Identity rows and their credential fields.

    Usage:
        store = IdentityStore("sqlite:///:memory:")
        store.create_identity(Identity(id="id-1", email="a@example.com"), password_hash, passcode_hash)
        ids = store.lookup_by_email("a@example.com")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL, timeout: float = 5.0) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # timeout bounds how long a writer waits on SQLite's database lock.
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = timeout
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Identity lifecycle
    # ------------------------------------------------------------------

    def create_identity(self, identity: Identity, password_hash: str | None, passcode_hash: str) -> str:
        """Insert an identity with its initial credential hashes and return its id.

        Raises sqlalchemy.exc.IntegrityError if the id or slug already exists.
        """
        with self.engine.connect() as conn:
            conn.execute(
                _identities.insert().values(
                    id=identity.id,
                    slug=identity.slug,
                    email=identity.email,
                    label=identity.label,
                    role=identity.role,
                    status=IdentityStatus(identity.status).value,
                    email_verified=1 if identity.email_verified else 0,
                    password_hash=password_hash,
                    passcode_hash=passcode_hash,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
        return identity.id

    def set_status(self, identity_id: str, status: IdentityStatus) -> bool:
        """Change an identity's status. Returns False if the identity does not exist."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _identities.update().where(_identities.c.id == identity_id).values(status=IdentityStatus(status).value)
            )
            conn.commit()
        return result.rowcount > 0

    def delete_identity(self, identity_id: str) -> bool:
        """Permanently delete an identity and its credentials. Returns True if deleted."""
        with self.engine.connect() as conn:
            result = conn.execute(_identities.delete().where(_identities.c.id == identity_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_identity(self, identity_id: str) -> Identity | None:
        """Look up an identity by id. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_identity_select().where(_identities.c.id == identity_id)).fetchone()
        return _row_to_identity(row) if row is not None else None

    def get_identities(self, identity_ids: Iterable[str]) -> list[Identity]:
        """Return the identities whose ids are listed, ordered by id. Unknown ids are skipped."""
        ids = list(identity_ids)
        if not ids:
            return []
        with self.engine.connect() as conn:
            rows = conn.execute(
                _identity_select().where(_identities.c.id.in_(ids)).order_by(_identities.c.id)
            ).fetchall()
        return [_row_to_identity(r) for r in rows]

    def get_candidates(self, identity_ids: Iterable[str]) -> list[IdentityCandidate]:
        """Return (id, label) pairs for the listed identities, ordered by id."""
        ids = list(identity_ids)
        if not ids:
            return []
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_identities.c.id, _identities.c.label)
                .where(_identities.c.id.in_(ids))
                .order_by(_identities.c.id)
            ).fetchall()
        return [IdentityCandidate(identity_id=r.id, label=r.label) for r in rows]

    def lookup_by_id_or_slug(self, name: str) -> str | None:
        """Return the id of the identity whose id or slug equals name, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_identities.c.id).where((_identities.c.id == name) | (_identities.c.slug == name))
            ).fetchone()
        return row.id if row is not None else None

    def lookup_by_email(self, email: str, active_only: bool = True) -> list[str]:
        """Return the ids of all identities using email as their contact point.

        Exact, case-sensitive match. Ordered by id for deterministic output.
        """
        query = select(_identities.c.id).where(_identities.c.email == email)
        if active_only:
            query = query.where(_identities.c.status == IdentityStatus.active.value)
        with self.engine.connect() as conn:
            rows = conn.execute(query.order_by(_identities.c.id)).fetchall()
        return [r.id for r in rows]

    # ------------------------------------------------------------------
    # Credential fields
    # ------------------------------------------------------------------

    def get_credential_fields(self, identity_id: str, fields: Iterable[str]) -> CredentialRecord | None:
        """Fetch status plus the requested credential hash columns for one identity.

        Only PASSWORD_FIELD and PASSCODE_FIELD may be requested. Columns not
        requested come back as None on the record. Returns None if no row exists.
        """
        wanted = set(fields)
        unknown = wanted - {PASSWORD_FIELD, PASSCODE_FIELD}
        if unknown:
            raise ValueError(f"Unknown credential fields: {unknown!r}")
        columns = [_identities.c.id, _identities.c.status] + [_identities.c[name] for name in sorted(wanted)]
        with self.engine.connect() as conn:
            row = conn.execute(select(*columns).where(_identities.c.id == identity_id)).fetchone()
        return _row_to_record(row) if row is not None else None

    def update_credentials(self, identity_id: str, **fields) -> bool:
        """Atomically write credential columns for one identity.

        Accepted fields: password_hash, passcode_hash, email_verified (bool).
        The write is conditioned on the row existing with a status set.
        Returns True if a row was updated, False if it was not found.

        Unknown keys raise ValueError rather than being silently ignored.
        """
        unknown = set(fields) - _CREDENTIAL_COLUMNS
        if unknown:
            raise ValueError(f"Unknown credential columns: {unknown!r}")
        if not fields:
            return False
        if "email_verified" in fields:
            fields["email_verified"] = 1 if fields["email_verified"] else 0
        with self.engine.connect() as conn:
            result = conn.execute(
                _identities.update()
                .where((_identities.c.id == identity_id) & (_identities.c.status.is_not(None)))
                .values(**fields)
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _identity_select():
    # Credential hashes are deliberately not part of the Identity projection.
    c = _identities.c
    return select(c.id, c.slug, c.email, c.label, c.role, c.status, c.email_verified, c.created_at)


def _row_to_identity(row) -> Identity:
    return Identity(
        id=row.id,
        slug=row.slug,
        email=row.email,
        label=row.label,
        role=row.role,
        status=IdentityStatus(row.status),
        email_verified=bool(row.email_verified),
        created_at=row.created_at,
    )


def _row_to_record(row) -> CredentialRecord:
    mapping = row._mapping
    return CredentialRecord(
        identity_id=row.id,
        status=IdentityStatus(row.status),
        password_hash=mapping.get(PASSWORD_FIELD),
        passcode_hash=mapping.get(PASSCODE_FIELD),
    )
