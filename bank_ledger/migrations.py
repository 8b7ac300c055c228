"""
Database Migration System

Simple versioned migrations for the accounts and transactions tables.
Supports both PostgreSQL and SQLite backends; the in-memory database has
no schema and needs none.
"""

from typing import Any, Dict, List, Optional
import hashlib
import logging

from .storage import Database, SQLDatabase
from .models import utcnow


logger = logging.getLogger(__name__)

MIGRATION_TABLE = "schema_migrations"


class Migration:
    """Represents a single database migration, with DDL per dialect"""

    def __init__(self, version: int, name: str, up: Dict[str, List[str]],
                 down: Optional[Dict[str, List[str]]] = None):
        self.version = version
        self.name = name
        self.up = up
        self.down = down or {}

    def statements(self, dialect: str, direction: str = "up") -> List[str]:
        source = self.up if direction == "up" else self.down
        if dialect not in source:
            raise ValueError(f"{self} has no {direction} statements for {dialect}")
        return source[dialect]

    def checksum(self, dialect: str) -> str:
        return hashlib.md5(";".join(self.statements(dialect)).encode()).hexdigest()

    def __str__(self) -> str:
        return f"Migration v{self.version:03d}: {self.name}"

    def __repr__(self) -> str:
        return f"Migration(version={self.version}, name='{self.name}')"


ACCOUNTS_MIGRATION = Migration(1, "Create accounts table", up={
    "sqlite": [
        """
        CREATE TABLE IF NOT EXISTS accounts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            account_number INTEGER NOT NULL UNIQUE,
            balance TEXT NOT NULL DEFAULT '0.00',
            currency TEXT NOT NULL DEFAULT 'TRY',
            created_at TEXT NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_accounts_user_id ON accounts(user_id)",
    ],
    "postgresql": [
        """
        CREATE TABLE IF NOT EXISTS accounts (
            id SERIAL PRIMARY KEY,
            user_id INT NOT NULL,
            account_number BIGINT NOT NULL UNIQUE,
            balance NUMERIC(15, 2) NOT NULL DEFAULT 0.00 CHECK (balance >= 0),
            currency VARCHAR(3) NOT NULL DEFAULT 'TRY',
            created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_accounts_user_id ON accounts(user_id)",
    ],
}, down={
    "sqlite": ["DROP TABLE IF EXISTS accounts"],
    "postgresql": ["DROP TABLE IF EXISTS accounts"],
})

TRANSACTIONS_MIGRATION = Migration(2, "Create transactions table", up={
    "sqlite": [
        """
        CREATE TABLE IF NOT EXISTS transactions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            from_account_id INTEGER NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            to_account_id INTEGER NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            amount TEXT NOT NULL CHECK (CAST(amount AS NUMERIC) > 0),
            created_at TEXT NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_transactions_from ON transactions(from_account_id)",
        "CREATE INDEX IF NOT EXISTS idx_transactions_to ON transactions(to_account_id)",
    ],
    "postgresql": [
        """
        CREATE TABLE IF NOT EXISTS transactions (
            id SERIAL PRIMARY KEY,
            from_account_id INT NOT NULL,
            to_account_id INT NOT NULL,
            amount NUMERIC(15, 2) NOT NULL CHECK (amount > 0),
            created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,

            CONSTRAINT fk_from_account
                FOREIGN KEY(from_account_id)
                REFERENCES accounts(id)
                ON DELETE CASCADE,

            CONSTRAINT fk_to_account
                FOREIGN KEY(to_account_id)
                REFERENCES accounts(id)
                ON DELETE CASCADE
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_transactions_from ON transactions(from_account_id)",
        "CREATE INDEX IF NOT EXISTS idx_transactions_to ON transactions(to_account_id)",
    ],
}, down={
    "sqlite": ["DROP TABLE IF EXISTS transactions"],
    "postgresql": ["DROP TABLE IF EXISTS transactions"],
})


class MigrationManager:
    """Manages database migrations"""

    def __init__(self, database: Database):
        self.database = database
        self.migrations: List[Migration] = []
        self.add_migration(ACCOUNTS_MIGRATION)
        self.add_migration(TRANSACTIONS_MIGRATION)

    @property
    def enabled(self) -> bool:
        return isinstance(self.database, SQLDatabase)

    def add_migration(self, migration: Migration) -> None:
        """Add a migration to the manager"""
        self.migrations.append(migration)
        # Keep migrations sorted by version
        self.migrations.sort(key=lambda m: m.version)

    def _ensure_migration_table(self) -> None:
        with self.database.atomic() as uow:
            uow.execute(f"""
                CREATE TABLE IF NOT EXISTS {MIGRATION_TABLE} (
                    version INTEGER PRIMARY KEY,
                    name TEXT NOT NULL,
                    checksum TEXT NOT NULL,
                    applied_at TEXT NOT NULL
                )
            """)

    def get_applied_migrations(self) -> List[Dict[str, Any]]:
        """Get list of applied migrations"""
        if not self.enabled:
            return []
        self._ensure_migration_table()
        return self.database.fetch(
            f"SELECT version, name, checksum, applied_at FROM {MIGRATION_TABLE} ORDER BY version"
        )

    def get_current_version(self) -> int:
        """Get the current database version"""
        versions = [int(m["version"]) for m in self.get_applied_migrations()]
        return max(versions) if versions else 0

    def get_pending_migrations(self, target_version: Optional[int] = None) -> List[Migration]:
        """Get list of pending migrations"""
        if not self.enabled:
            return []
        current_version = self.get_current_version()
        max_version = target_version or max((m.version for m in self.migrations), default=0)
        return [m for m in self.migrations if current_version < m.version <= max_version]

    def migrate_up(self, target_version: Optional[int] = None) -> List[Migration]:
        """Apply pending migrations up to target version"""
        if not self.enabled:
            logger.info("In-memory database has no schema, skipping migrations")
            return []

        pending = self.get_pending_migrations(target_version)
        applied = []

        if not pending:
            logger.info("No pending migrations to apply")
            return applied

        logger.info(f"Applying {len(pending)} pending migrations")

        dialect = self.database.dialect
        for migration in pending:
            try:
                logger.info(f"Applying {migration}")
                with self.database.atomic() as uow:
                    for statement in migration.statements(dialect):
                        uow.execute(statement)
                    uow.execute(
                        f"INSERT INTO {MIGRATION_TABLE} (version, name, checksum, applied_at) VALUES (?, ?, ?, ?)",
                        (migration.version, migration.name, migration.checksum(dialect), utcnow().isoformat())
                    )
                applied.append(migration)
            except Exception as e:
                logger.error(f"Failed to apply {migration}: {e}")
                raise RuntimeError(f"Migration failed: {migration}") from e

        logger.info(f"Successfully applied {len(applied)} migrations")
        return applied

    def migrate_down(self, target_version: int) -> List[Migration]:
        """Rollback migrations down to target version"""
        if not self.enabled:
            return []

        current_version = self.get_current_version()
        if target_version >= current_version:
            logger.info("Target version is not lower than current version")
            return []

        rolledback = []
        dialect = self.database.dialect
        for migration in reversed(self.migrations):
            if not target_version < migration.version <= current_version:
                continue
            try:
                logger.info(f"Rolling back {migration}")
                with self.database.atomic() as uow:
                    for statement in migration.statements(dialect, "down"):
                        uow.execute(statement)
                    uow.execute(f"DELETE FROM {MIGRATION_TABLE} WHERE version = ?", (migration.version,))
                rolledback.append(migration)
            except Exception as e:
                logger.error(f"Failed to rollback {migration}: {e}")
                raise RuntimeError(f"Rollback failed: {migration}") from e

        logger.info(f"Successfully rolled back {len(rolledback)} migrations")
        return rolledback

    def validate_migrations(self) -> bool:
        """Validate that applied migrations match expected checksums"""
        dialect = self.database.dialect
        for applied in self.get_applied_migrations():
            version = int(applied["version"])
            migration = next((m for m in self.migrations if m.version == version), None)
            if not migration:
                logger.warning(f"Applied migration v{version} not found in definitions")
                continue

            expected = migration.checksum(dialect)
            if applied["checksum"] != expected:
                logger.error(f"Checksum mismatch for v{version}: expected {expected}, got {applied['checksum']}")
                return False

        return True
