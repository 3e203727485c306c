from __future__ import annotations

import logging
import sys
import traceback
from logging.handlers import RotatingFileHandler
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import select

from casenotes.infrastructure.db.models_sqlalchemy import User

PACKAGE_DIR = Path(__file__).resolve().parents[1]
ROOT_DIR = PACKAGE_DIR.parent
MIGRATIONS_DIR = PACKAGE_DIR / "infrastructure" / "db" / "migrations"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(log_dir: Path, level: str = "INFO", *, console: bool = True) -> Path:
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / "casenotes.log"
    resolved = log_path.resolve()
    formatter = logging.Formatter(LOG_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    if not any(
        isinstance(h, RotatingFileHandler) and Path(h.baseFilename) == resolved for h in root_logger.handlers
    ):
        handler = RotatingFileHandler(log_path, maxBytes=2_000_000, backupCount=3, encoding="utf-8")
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
    if console and not any(type(h) is logging.StreamHandler for h in root_logger.handlers):
        stream = logging.StreamHandler(sys.stderr)
        stream.setFormatter(formatter)
        root_logger.addHandler(stream)
    return log_path


def alembic_config(database_url: str) -> Config:
    ini_path = ROOT_DIR / "alembic.ini"
    cfg = Config(str(ini_path)) if ini_path.exists() else Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    cfg.set_main_option("sqlalchemy.url", database_url)
    return cfg


def check_startup_prerequisites(db_file: Path) -> bool:
    logger = logging.getLogger(__name__)
    if not MIGRATIONS_DIR.exists():
        logger.error("Migrations directory is missing: %s", MIGRATIONS_DIR)
        return False
    try:
        db_file.parent.mkdir(parents=True, exist_ok=True)
        test_file = db_file.parent / ".write_test"
        test_file.write_text("ok", encoding="utf-8")
        test_file.unlink(missing_ok=True)
    except OSError:
        logger.exception("Database directory is not writable: %s", db_file.parent)
        return False
    return True


def run_migrations(database_url: str, log_dir: Path) -> bool:
    logger = logging.getLogger(__name__)
    try:
        command.upgrade(alembic_config(database_url), "head")
        return True
    except Exception:  # noqa: BLE001
        logger.exception("Failed to run migrations")
        try:
            error_path = log_dir / "migration_error.log"
            error_path.parent.mkdir(parents=True, exist_ok=True)
            with error_path.open("a", encoding="utf-8") as handle:
                handle.write("\n--- Migration error ---\n")
                handle.write(f"DB: {database_url}\n")
                handle.write(f"Migrations: {MIGRATIONS_DIR}\n")
                handle.write(traceback.format_exc())
        except OSError:
            logger.exception("Failed to write migration error log")
        return False


def has_users(session_factory) -> bool:
    try:
        with session_factory() as session:
            return session.execute(select(User.id).limit(1)).first() is not None
    except Exception:  # noqa: BLE001
        logging.getLogger(__name__).exception("Failed to check users")
        return False


def initialize_database(*, db_file: Path, database_url: str, log_dir: Path) -> bool:
    if not check_startup_prerequisites(db_file):
        return False
    return run_migrations(database_url, log_dir)
