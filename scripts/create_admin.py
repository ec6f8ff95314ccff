"""Create an active administrator account in the remote record store.

Usage:
  RECORD_STORE_URL=postgresql://... python scripts/create_admin.py \
      --email root@example.com --password '...' --role SuperAdmin

Self-registration only ever creates ``User`` accounts, so the first
administrator has to be provisioned out of band.
"""

import argparse
import sys
from pathlib import Path

from psycopg_pool import ConnectionPool
from pydantic import ValidationError as RequestValidationError

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from accessgate.api.routes import CreateUserRequest
from accessgate.config import get_settings
from accessgate.domain.account import Role
from accessgate.domain.service import AuthService
from accessgate.errors import AccessError
from accessgate.notifications import ConsoleNotifier
from accessgate.store.memory import InMemoryAccountStore
from accessgate.store.records import PostgresRecordStore
from accessgate.store.tiered import TieredAccountStore


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--email", required=True)
    ap.add_argument("--password", required=True)
    ap.add_argument("--role", choices=[Role.SUPER_ADMIN.value, Role.ADMIN.value], default=Role.SUPER_ADMIN.value)
    args = ap.parse_args(argv)

    # Same rules as POST /users, so the account can log in over HTTP afterwards.
    try:
        request = CreateUserRequest(email=args.email, password=args.password, role=args.role)
    except RequestValidationError as exc:
        for error in exc.errors():
            field = ".".join(str(part) for part in error.get("loc", ()))
            print(f"error: {field}: {error.get('msg')}", file=sys.stderr)
        return 2

    settings = get_settings()
    if not settings.record_store_url:
        print("RECORD_STORE_URL is not set; an in-memory account would vanish on exit.", file=sys.stderr)
        return 2

    with ConnectionPool(settings.record_store_url, timeout=settings.record_store_timeout_seconds) as pool:
        remote = PostgresRecordStore(
            pool,
            table=settings.record_store_table,
            timeout_seconds=settings.record_store_timeout_seconds,
        )
        remote.ensure_schema()
        service = AuthService(TieredAccountStore(InMemoryAccountStore(), remote), ConsoleNotifier(), settings)
        try:
            account = service.create_account_as_admin(request.email, request.password, request.role)
        except AccessError as exc:
            print(f"error: {exc.message}", file=sys.stderr)
            return 1
        if remote.fetch(account.account_id) is None:
            print("error: account was not written to the record store", file=sys.stderr)
            return 1

    print("Created account:")
    print(f"  id:    {account.account_id}")
    print(f"  email: {account.email}")
    print(f"  role:  {account.role.value}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
