"""Client for the remote account record store (Postgres)."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Sequence

from psycopg import Cursor, Error as PsycopgError, sql
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool, PoolTimeout

from ..domain.account import Account, AccountStatus, Role, normalize_email
from ..errors import RecordStoreError

logger = logging.getLogger(__name__)

_COLUMNS = (
    "account_id",
    "email",
    "password_hash",
    "role",
    "status",
    "verification_token",
    "created_at",
    "updated_at",
)


class PostgresRecordStore:
    """Account records kept in a Postgres table reached through a connection pool.

    Every call runs under a deadline: the pool checkout waits at most
    ``timeout_seconds`` and the statement is bounded by ``statement_timeout``.
    Any driver, pool or timeout failure is raised as :class:`RecordStoreError`.
    """

    def __init__(self, pool: ConnectionPool, table: str = "accounts", timeout_seconds: float = 5.0) -> None:
        self._pool = pool
        self._table = sql.Identifier(table)
        self._timeout = timeout_seconds

    def ensure_schema(self) -> None:
        """Create the account table when it does not exist yet."""
        statement = sql.SQL(
            """
            CREATE TABLE IF NOT EXISTS {table} (
                account_id TEXT PRIMARY KEY,
                email TEXT NOT NULL UNIQUE,
                password_hash TEXT NOT NULL,
                role TEXT NOT NULL,
                status TEXT NOT NULL,
                verification_token TEXT NOT NULL DEFAULT '',
                created_at TIMESTAMPTZ NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL
            )
            """
        ).format(table=self._table)
        with self._cursor() as cur:
            cur.execute(statement)

    def list_records(self) -> list[Account]:
        with self._cursor() as cur:
            cur.execute(self._select("TRUE", order=True))
            return [self._map_record(row) for row in cur.fetchall()]

    def fetch(self, account_id: str) -> Account | None:
        return self._fetch_one("account_id = %s", (account_id,))

    def find_by_email(self, email: str) -> Account | None:
        return self._fetch_one("lower(email) = %s", (normalize_email(email),))

    def find_by_verification_token(self, token: str) -> Account | None:
        return self._fetch_one("verification_token = %s", (token,))

    def insert(self, account: Account) -> Account:
        """Write a record created on the local tier, keeping its id."""
        statement = sql.SQL(
            """
            INSERT INTO {table} ({columns})
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {columns}
            """
        ).format(table=self._table, columns=self._column_list())
        with self._cursor() as cur:
            cur.execute(statement, self._values(account))
            return self._map_record(cur.fetchone())

    def update(self, account: Account) -> Account | None:
        """Overwrite the mutable fields of a record; the email column is never touched."""
        statement = sql.SQL(
            """
            UPDATE {table}
            SET password_hash = %s, role = %s, status = %s,
                verification_token = %s, updated_at = %s
            WHERE account_id = %s
            RETURNING {columns}
            """
        ).format(table=self._table, columns=self._column_list())
        with self._cursor() as cur:
            cur.execute(
                statement,
                (
                    account.credential_hash,
                    account.role.value,
                    account.status.value,
                    account.verification_token,
                    account.updated_at,
                    account.account_id,
                ),
            )
            row = cur.fetchone()
        return self._map_record(row) if row else None

    def remove(self, account_id: str) -> bool:
        statement = sql.SQL("DELETE FROM {table} WHERE account_id = %s").format(table=self._table)
        with self._cursor() as cur:
            cur.execute(statement, (account_id,))
            return cur.rowcount > 0

    @contextmanager
    def _cursor(self) -> Iterator[Cursor[Any]]:
        try:
            with self._pool.connection(timeout=self._timeout) as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        "SELECT set_config('statement_timeout', %s, true)",
                        (str(int(self._timeout * 1000)),),
                    )
                    yield cur
                conn.commit()
        except (PsycopgError, PoolTimeout) as exc:
            raise RecordStoreError(f"record store call failed: {exc.__class__.__name__}") from exc

    def _fetch_one(self, where: str, params: Sequence[Any]) -> Account | None:
        with self._cursor() as cur:
            cur.execute(self._select(where), params)
            row = cur.fetchone()
        return self._map_record(row) if row else None

    def _select(self, where: str, order: bool = False) -> sql.Composed:
        query = sql.SQL("SELECT {columns} FROM {table} WHERE ").format(
            columns=self._column_list(), table=self._table
        ) + sql.SQL(where)
        if order:
            query += sql.SQL(" ORDER BY created_at, account_id")
        else:
            query += sql.SQL(" LIMIT 1")
        return query

    def _column_list(self) -> sql.Composed:
        return sql.SQL(", ").join(sql.Identifier(column) for column in _COLUMNS)

    def _values(self, account: Account) -> tuple[Any, ...]:
        return (
            account.account_id,
            account.email,
            account.credential_hash,
            account.role.value,
            account.status.value,
            account.verification_token,
            account.created_at,
            account.updated_at,
        )

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        role = Role.parse(row[3])
        if role is None:
            logger.warning("record %s carries unknown role %r, treating as User", row[0], row[3])
            role = Role.USER
        try:
            status = AccountStatus(row[4])
        except ValueError:
            status = AccountStatus.PENDING
        return Account(
            account_id=row[0],
            email=row[1],
            credential_hash=row[2],
            role=role,
            status=status,
            verification_token=row[5] or "",
            created_at=row[6],
            updated_at=row[7],
        )
