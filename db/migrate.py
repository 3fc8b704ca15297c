"""
db/migrate.py -- Ordered, ledger-tracked schema migrations.

Usage:
  python -m db.migrate                 # apply pending files from db/migrations
  python -m db.migrate --dir ./extra   # apply from another directory

Also called from the API lifespan when AUTO_MIGRATE_ON_BOOT is true, before
the app accepts traffic.

Algorithm:
  1. One dedicated connection for the whole run.
  2. Ensure the schema_migrations ledger exists.
  3. List *.sql files, sorted lexicographically by filename. Filenames carry
     a zero-padded sequence prefix (001_, 002_, ...) so that order is the
     application order.
  4. For each file: skip if the filename is in the ledger, otherwise execute
     the whole file as one batch and then insert the ledger row.
  5. Release the connection.

The batch and its ledger row are two separate statements, not one
transaction. A crash between them leaves the file applied but unrecorded,
and it is re-run on the next boot -- so every migration must use
IF NOT EXISTS guards. On PostgreSQL the batch runs in autocommit mode, so a
migration may contain statements that are refused inside a transaction block
(e.g. CREATE INDEX CONCURRENTLY).

Not safe for two processes at once: both may see a file as pending. Run it
from a single boot path.

Any SQL error is fatal: MigrationError names the failing file and the process
must not serve traffic with an unknown schema.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

from core.config import get_settings
from db.engine import create_db_engine

logger = logging.getLogger("authcore.db")

MIGRATIONS_DIR = Path(__file__).parent / "migrations"
MIGRATION_SUFFIX = ".sql"

_LEDGER_DDL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    filename TEXT PRIMARY KEY,
    applied_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
)
"""


class MigrationError(RuntimeError):
    """A migration file failed to apply. Fatal at boot."""

    def __init__(self, filename: str, reason: str) -> None:
        super().__init__(f"Migration {filename} failed: {reason}")
        self.filename = filename


def list_migration_files(migrations_dir: Path) -> list[Path]:
    """Return migration files in application order."""
    files = [p for p in migrations_dir.iterdir() if p.is_file() and p.suffix == MIGRATION_SUFFIX]
    return sorted(files, key=lambda p: p.name)


def _is_applied(conn: Connection, filename: str) -> bool:
    row = conn.execute(
        text("SELECT filename FROM schema_migrations WHERE filename = :filename"),
        {"filename": filename},
    ).fetchone()
    return row is not None


def _execute_batch(conn: Connection, sql: str) -> None:
    """Run a multi-statement SQL script on the raw DBAPI connection.

    SQLAlchemy's execute() takes one statement at a time. sqlite3 only runs
    scripts through executescript(); PostgreSQL drivers accept a full batch
    in a single cursor.execute() with no parameters. That call runs with the
    driver in autocommit mode; the driver refuses to switch modes mid
    transaction, so any open transaction is committed first.
    """
    raw = conn.connection
    if conn.dialect.name == "sqlite":
        raw.driver_connection.executescript(sql)
        return
    conn.commit()
    driver = raw.driver_connection
    driver.autocommit = True
    try:
        cursor = raw.cursor()
        try:
            cursor.execute(sql)
        finally:
            cursor.close()
    finally:
        driver.autocommit = False


def run_migrations(engine: Engine, migrations_dir: Path = MIGRATIONS_DIR) -> list[str]:
    """Apply every pending migration in order. Returns the filenames applied."""
    applied: list[str] = []
    with engine.connect() as conn:
        conn.execute(text(_LEDGER_DDL))
        conn.commit()

        for path in list_migration_files(migrations_dir):
            filename = path.name
            if _is_applied(conn, filename):
                logger.debug("Migration %s already applied", filename)
                continue

            try:
                _execute_batch(conn, path.read_text(encoding="utf-8"))
                conn.execute(
                    text("INSERT INTO schema_migrations (filename) VALUES (:filename)"),
                    {"filename": filename},
                )
                conn.commit()
            except Exception as exc:
                conn.rollback()
                logger.error("Migration %s failed: %s", filename, exc)
                raise MigrationError(filename, str(exc)) from exc

            logger.info("Applied migration %s", filename)
            applied.append(filename)

    if not applied:
        logger.info("Schema up to date (no pending migrations)")
    return applied


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Apply pending authcore schema migrations.")
    parser.add_argument("--dir", type=Path, default=MIGRATIONS_DIR, help="Directory of *.sql migration files")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    engine = create_db_engine(get_settings(), pool_size=1)
    try:
        run_migrations(engine, args.dir)
    except Exception:
        logger.exception("Migration run aborted")
        return 1
    finally:
        engine.dispose()
    return 0


if __name__ == "__main__":
    sys.exit(main())
