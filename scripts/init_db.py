"""
Idempotent seed: module catalog, first admin user, budget/projection rows
and the default transaction subcategories.

Usage:
  python scripts/init_db.py
"""
import os
import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv  # noqa: E402

from app.impgeo.accounts import create_user  # noqa: E402
from app.impgeo.constants import DEFAULT_SUBCATEGORIES  # noqa: E402
from app.impgeo.models import User  # noqa: E402
from app.impgeo.modules.projection.service import ensure_projection_rows  # noqa: E402
from app.impgeo.modules.transactions.service import ensure_subcategory  # noqa: E402
from app.impgeo.permissions import ensure_default_modules  # noqa: E402
from scripts._db_utils import resolve_database_url, script_session  # noqa: E402


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed catalog/admin/projection rows in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_username = (os.environ.get("ADMIN_USERNAME") or "admin").strip()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = resolve_database_url(database_url)

    # Use direct engine/session so this can run in release without importing app.wsgi.
    with script_session(db_url) as s:
        modules = ensure_default_modules(s)
        print(f"Module catalog: {len(modules)} system modules", flush=True)

        admin = s.query(User).filter(User.username == admin_username).one_or_none()
        if admin is None:
            create_user(
                s,
                {"username": admin_username, "password": admin_password, "role": "admin", "firstName": "Administrador"},
                None,
            )
            print(f"Created admin user '{admin_username}'", flush=True)
            if admin_password == "change-me":
                print("WARNING: ADMIN_PASSWORD not set; change the admin password after first login.", flush=True)
        else:
            print(f"Admin user '{admin_username}' already exists (password untouched)", flush=True)

        ensure_projection_rows(s)
        for name in DEFAULT_SUBCATEGORIES:
            ensure_subcategory(s, name)
        print(f"Subcategories: {len(DEFAULT_SUBCATEGORIES)} defaults ensured", flush=True)


def main() -> None:
    load_dotenv()
    seed_only()


if __name__ == "__main__":
    main()
