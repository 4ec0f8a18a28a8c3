import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_MIGRATIONS_DIR = Path(__file__).resolve().parents[3] / "migrations"


class SQLiteMigrator:
    """Applies `migrations/*.sql` in filename order, once each."""

    def __init__(self, db_path: str, migrations_dir: str | Path = DEFAULT_MIGRATIONS_DIR):
        self.db_path = db_path
        self.migrations_dir = Path(migrations_dir)

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def _ensure_migration_table(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS _migrations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                filename TEXT UNIQUE NOT NULL,
                applied_at DATETIME DEFAULT CURRENT_TIMESTAMP
            );
        """)

    def _get_applied_migrations(self, conn: sqlite3.Connection) -> set[str]:
        cursor = conn.execute("SELECT filename FROM _migrations")
        return {row[0] for row in cursor.fetchall()}

    def pending(self) -> list[str]:
        conn = self._get_connection()
        try:
            self._ensure_migration_table(conn)
            applied = self._get_applied_migrations(conn)
        finally:
            conn.close()
        return [p.name for p in sorted(self.migrations_dir.glob("*.sql")) if p.name not in applied]

    def run_migrations(self) -> list[str]:
        """Apply all pending migrations and return their filenames."""
        conn = self._get_connection()
        applied_now: list[str] = []
        try:
            self._ensure_migration_table(conn)
            applied = self._get_applied_migrations(conn)

            for path in sorted(self.migrations_dir.glob("*.sql")):
                if path.name in applied:
                    continue
                logger.info("Applying migration %s", path.name)
                self._apply_migration(conn, path)
                applied_now.append(path.name)

            logger.info("Migrations up to date (%d applied)", len(applied_now))
            return applied_now
        finally:
            conn.close()

    def _read_up_script(self, path: Path) -> str:
        # Everything above the "-- Down" marker is the upgrade
        return path.read_text().split("-- Down")[0]

    def _apply_migration(self, conn: sqlite3.Connection, path: Path) -> None:
        script = self._read_up_script(path)
        try:
            conn.executescript(script)
            conn.execute("INSERT INTO _migrations (filename) VALUES (?)", (path.name,))
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise RuntimeError(f"Migration {path.name} failed: {e}") from e
