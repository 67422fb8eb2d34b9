# Overview: Service-layer helpers for locking, optimistic version checks and commit handling.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError, MarketplaceError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def check_version(entity, expected_version: int | None, *, entity_name: str) -> None:
    """Raise ConflictError when the caller's view of the row is stale."""
    if expected_version is None:
        return
    if entity.version_id != expected_version:
        raise ConflictError(
            f"{entity_name} {entity.id} was modified (expected version {expected_version}, found {entity.version_id})",
            entity=entity_name,
            id=entity.id,
            expected=expected_version,
            actual=entity.version_id,
        )


def commit_or_conflict(*, entity_name: str, entity_id: int | None) -> None:
    """
    Commit the current unit of work.

    A version_id_col mismatch (another writer committed first) rolls the
    whole unit back and surfaces as ConflictError; the caller decides
    whether to re-read and retry.
    """
    try:
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        current_app.logger.info("Concurrent update rejected for %s %s", entity_name, entity_id)
        raise ConflictError(
            f"{entity_name} {entity_id} was modified concurrently",
            entity=entity_name,
            id=entity_id,
        ) from exc


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on lock contention.

    Retries OperationalError (deadlocks, busy locks) only; optimistic
    version conflicts are returned to the caller as ConflictError.
    """
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))


def retry_on_conflict(func, *, attempts: int = 3, backoff_base: float = 0.05):
    """
    Caller-side helper: re-run `func` when it raises ConflictError.

    `func` must re-read the state it acts on, since each attempt starts
    from a rolled-back session.
    """
    for attempt in range(attempts):
        try:
            return func()
        except ConflictError:
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))


def run_in_transaction(func, *, entity_name: str, entity_id: int | None = None):
    """
    Run `func` and commit its changes as one unit.

    Any error raised by `func` rolls back the whole unit, so
    derived fields never commit partially. A unique-constraint race
    surfaces as ConflictError.
    """
    def _op():
        try:
            result = func()
        except MarketplaceError:
            db.session.rollback()
            raise
        except IntegrityError as exc:
            db.session.rollback()
            raise ConflictError(
                f"{entity_name} conflicts with an existing record",
                entity=entity_name,
                id=entity_id,
            ) from exc
        except Exception:
            db.session.rollback()
            raise
        try:
            commit_or_conflict(entity_name=entity_name, entity_id=entity_id)
        except IntegrityError as exc:
            db.session.rollback()
            raise ConflictError(
                f"{entity_name} conflicts with an existing record",
                entity=entity_name,
                id=entity_id,
            ) from exc
        return result

    return run_with_retry(_op)
