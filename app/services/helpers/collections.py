"""
Collection load/persist helpers shared by the catalog, template and OTI services.

Every service works the same way:
  1. load the whole collection fresh from the repository,
  2. build the complete updated list of records in memory,
  3. persist it in one ``save`` call.

Nothing is cached between calls, so a failed save leaves the stored
collection exactly as it was.

Usage:
    blocks = load_records(repo, "buildingBlocks", BuildingBlock.from_dict)
    ...
    persist(repo, "buildingBlocks", [b.to_dict() for b in blocks], retries=3)
"""

import logging

from app.core.exceptions import PersistenceError

logger = logging.getLogger(__name__)


def load_records(repository, key, factory):
    """Load collection ``key`` and build records with ``factory``.

    A missing collection is an empty one.
    """
    payload = repository.load(key) or []
    return [factory(item) for item in payload]


def persist(repository, key, payload, retries=3):
    """Save ``payload`` under ``key``, retrying the same payload on failure.

    Business logic is never re-run between attempts; the payload was fully
    computed before the first call.

    Raises:
        PersistenceError: If every attempt failed.
    """
    attempts = max(1, int(retries))
    for attempt in range(1, attempts + 1):
        if repository.save(key, payload):
            return
        logger.warning("Save of %s failed (attempt %d/%d)", key, attempt, attempts)
    raise PersistenceError(key)


def find_index(records, record_id):
    """Index of the record with ``id == record_id``, or -1."""
    for index, record in enumerate(records):
        if record.id == record_id:
            return index
    return -1
