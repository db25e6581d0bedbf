#!/usr/bin/env python3
"""
Wait for the database, run migrations, seed, then exec uvicorn.
"""
import os
import sys

import wait_for_db  # noqa: F401

from alembic import command
from alembic.config import Config

from app.core.config import settings

alembic_cfg = Config(os.path.join(os.path.dirname(__file__), "alembic.ini"))
alembic_cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
command.upgrade(alembic_cfg, "head")

from app.db.session import SessionLocal  # noqa: E402
from app.seed import run as run_seed  # noqa: E402

seed_db = SessionLocal()
try:
    run_seed(seed_db)
finally:
    seed_db.close()

os.execv(
    sys.executable,
    [sys.executable, "-m", "uvicorn", "app.main:app", "--host", "0.0.0.0", "--port", os.getenv("PORT", "8000")],
)
