"""Document repository — the persistence collaborator of the workflow core.

Every entity collection (building blocks, templates, OTIs, reference
data) is one JSON document addressed by key. Callers read the whole
collection, build the full updated collection, and hand it back to
``save``; there are no partial writes.

Rules:
  - ``save`` copies the current payload into collection_backups before
    overwriting it; at least one prior version is always retained.
  - ``save`` never raises for database failures: it rolls back, logs, and
    returns False so the service can retry with the same payload.
  - Payloads are deep-copied on the way in and out; callers can never
    mutate ORM state by accident.
"""

from __future__ import annotations

import copy
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from app.models.document import CollectionBackup, CollectionDocument

logger = logging.getLogger(__name__)


class DocumentRepository:
    """Key → JSON document store backed by Flask-SQLAlchemy.

    Args:
        db:               The Flask-SQLAlchemy extension (session resolved per call).
        backup_retention: How many prior versions to keep per key (minimum 1).
    """

    def __init__(self, db, backup_retention: int = 10) -> None:
        self._db = db
        self.backup_retention = max(1, int(backup_retention))

    @property
    def _session(self):
        return self._db.session

    def _document(self, key: str) -> CollectionDocument | None:
        return self._session.execute(
            select(CollectionDocument).where(CollectionDocument.key == key)
        ).scalar_one_or_none()

    # ── Contract ─────────────────────────────────────────────────────────────

    def load(self, key: str):
        """Return the stored payload for ``key``, or None if never saved."""
        doc = self._document(key)
        if doc is None:
            return None
        return copy.deepcopy(doc.payload)

    def save(self, key: str, payload) -> bool:
        """Replace the payload for ``key``, backing up the previous version.

        Returns:
            True on commit, False if the database rejected the write.
        """
        session = self._session
        try:
            doc = self._document(key)
            if doc is None:
                doc = CollectionDocument(key=key, payload=copy.deepcopy(payload), version=1)
                session.add(doc)
            else:
                session.add(CollectionBackup(
                    key=key,
                    payload=copy.deepcopy(doc.payload),
                    version=doc.version,
                ))
                doc.payload = copy.deepcopy(payload)
                doc.version = (doc.version or 0) + 1
            session.flush()
            self._prune_backups(key)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("Saving collection %s failed", key)
            return False

        logger.debug("Saved collection %s v%s", key, doc.version)
        return True

    # ── Backups ──────────────────────────────────────────────────────────────

    def _prune_backups(self, key: str) -> None:
        stale = self._session.execute(
            select(CollectionBackup)
            .where(CollectionBackup.key == key)
            .order_by(CollectionBackup.version.desc(), CollectionBackup.id.desc())
            .offset(self.backup_retention)
        ).scalars().all()
        for backup in stale:
            self._session.delete(backup)

    def list_backups(self, key: str) -> list[dict]:
        """Return backup metadata for ``key``, newest first."""
        rows = self._session.execute(
            select(CollectionBackup)
            .where(CollectionBackup.key == key)
            .order_by(CollectionBackup.version.desc(), CollectionBackup.id.desc())
        ).scalars().all()
        return [row.to_dict() for row in rows]

    def restore_latest_backup(self, key: str) -> bool:
        """Swap the newest backup back in as the current payload.

        The current payload is itself backed up by ``save``, so a restore
        can be undone. Returns False when there is nothing to restore or
        the write failed.
        """
        latest = self._session.execute(
            select(CollectionBackup)
            .where(CollectionBackup.key == key)
            .order_by(CollectionBackup.version.desc(), CollectionBackup.id.desc())
            .limit(1)
        ).scalar_one_or_none()
        if latest is None:
            logger.info("No backup to restore for %s", key)
            return False

        payload = copy.deepcopy(latest.payload)
        restored_version = latest.version
        self._session.delete(latest)
        if not self.save(key, payload):
            return False
        logger.info("Restored collection %s from backup v%s", key, restored_version)
        return True
