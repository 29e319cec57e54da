"""Operator commands: schema setup, first admin account, offline code batches."""
import argparse
import logging
import sys

from sqlalchemy import select

from cbt.core.database import SessionLocal, init_db
from cbt.core.errors import CBTError
from cbt.models.orm import User, UserRole
from cbt.services import accounts, unlock

logger = logging.getLogger(__name__)


def cmd_init_db(args) -> int:
    init_db()
    print("Database tables created")
    return 0


def cmd_create_admin(args) -> int:
    with SessionLocal() as db:
        user = accounts.register_user(db, args.name, args.email, args.password, role=UserRole.ADMIN.value)
    print(f"Admin created: {user.email} ({user.id})")
    return 0


def cmd_generate_codes(args) -> int:
    with SessionLocal() as db:
        generated_by = None
        if args.admin_email:
            admin = db.scalar(select(User).where(User.email == accounts.normalize_email(args.admin_email)))
            if admin is None or not admin.is_admin:
                print(f"No admin account for {args.admin_email}", file=sys.stderr)
                return 1
            generated_by = admin.id
        codes = unlock.generate_codes(db, args.quantity, args.duration, generated_by)
    for code in codes:
        print(code)
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="cbt-manage", description=__doc__)
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init-db", help="create database tables")
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser("create-admin", help="register an admin account")
    p.add_argument("--email", required=True)
    p.add_argument("--password", required=True)
    p.add_argument("--name", default="Administrator")
    p.set_defaults(func=cmd_create_admin)

    p = sub.add_parser("generate-codes", help="print a batch of new unlock codes")
    p.add_argument("--quantity", type=int, default=1)
    p.add_argument("--duration", type=int, default=unlock.DEFAULT_DURATION_MONTHS, help="months of premium")
    p.add_argument("--admin-email", dest="admin_email", default=None)
    p.set_defaults(func=cmd_generate_codes)
    return ap


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    try:
        return args.func(args)
    except CBTError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
