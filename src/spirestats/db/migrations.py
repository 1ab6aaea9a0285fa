"""
Versioned schema migrations.

Each migration is applied once, in ascending version order, inside its own
transaction together with its row in `schema_versions`. A failure aborts the
remaining sequence; migrations recorded before it stay applied.
"""

import sqlite3
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Sequence

from spirestats.config.logging import get_logger
from spirestats.db import schema

if TYPE_CHECKING:
    from spirestats.db.connection import Database


class MigrationError(RuntimeError):
    """A migration could not be applied or the registry is malformed."""


@dataclass(frozen=True)
class Migration:
    """One schema step with forward and manual-recovery statements."""

    version: int
    name: str
    up: tuple[str, ...]
    down: tuple[str, ...] = field(default=())


MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        version=1,
        name="initial",
        up=(schema.CREATE_SETTINGS, schema.CREATE_RUNS),
        down=(schema.DROP_RUNS, schema.DROP_SETTINGS),
    ),
    Migration(
        version=2,
        name="run indexes",
        up=(schema.CREATE_RUNS_TIMESTAMP_INDEX, schema.CREATE_RUNS_CHARACTER_INDEX),
        down=(schema.DROP_RUNS_CHARACTER_INDEX, schema.DROP_RUNS_TIMESTAMP_INDEX),
    ),
)

LATEST_VERSION = MIGRATIONS[-1].version


def _validate(migrations: Sequence[Migration]) -> None:
    previous = 0
    for migration in migrations:
        if migration.version <= previous:
            raise MigrationError(
                f"Migration versions must be strictly increasing: "
                f"{migration.version} ({migration.name}) follows {previous}"
            )
        previous = migration.version


def get_current_version(conn: sqlite3.Connection) -> int:
    """Highest applied version, 0 for a fresh database."""
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name = 'schema_versions'"
    ).fetchone()
    if row is None:
        return 0
    row = conn.execute("SELECT MAX(version) FROM schema_versions").fetchone()
    return row[0] or 0


def migrate(db: "Database", migrations: Sequence[Migration] = MIGRATIONS) -> list[int]:
    """
    Bring the schema up to the newest registered version.

    Args:
        db: Connected database
        migrations: Ordered registry (defaults to MIGRATIONS)

    Returns:
        Versions applied by this call, empty when already current

    Raises:
        MigrationError: Malformed registry or a failing migration
    """
    logger = get_logger(__name__)
    _validate(migrations)

    with db.transaction() as cursor:
        cursor.execute(schema.CREATE_SCHEMA_VERSIONS)

    current = get_current_version(db.connection)
    applied: list[int] = []

    for migration in migrations:
        if migration.version <= current:
            continue
        try:
            with db.transaction() as cursor:
                for statement in migration.up:
                    cursor.execute(statement)
                cursor.execute(
                    "INSERT INTO schema_versions (version) VALUES (?)",
                    (migration.version,),
                )
        except sqlite3.Error as e:
            logger.error(f"Migration {migration.version} ({migration.name}) failed: {e}")
            raise MigrationError(
                f"Migration {migration.version} ({migration.name}) failed"
            ) from e

        logger.info(f"Applied migration {migration.version}: {migration.name}")
        applied.append(migration.version)

    return applied


def rollback(
    db: "Database",
    target_version: int,
    migrations: Sequence[Migration] = MIGRATIONS,
) -> list[int]:
    """
    Revert applied migrations above target_version, newest first.

    Manual recovery only; nothing in the application calls this on its own.

    Returns:
        Versions reverted
    """
    logger = get_logger(__name__)
    _validate(migrations)

    if target_version < 0:
        raise MigrationError("Target version cannot be negative")

    current = get_current_version(db.connection)
    reverted: list[int] = []

    for migration in sorted(migrations, key=lambda m: m.version, reverse=True):
        if migration.version <= target_version or migration.version > current:
            continue
        try:
            with db.transaction() as cursor:
                for statement in migration.down:
                    cursor.execute(statement)
                cursor.execute(
                    "DELETE FROM schema_versions WHERE version = ?",
                    (migration.version,),
                )
        except sqlite3.Error as e:
            raise MigrationError(
                f"Rollback of migration {migration.version} ({migration.name}) failed"
            ) from e

        logger.warning(f"Rolled back migration {migration.version}: {migration.name}")
        reverted.append(migration.version)

    return reverted
