"""
Archivable capability — soft delete for shared catalog records.

Building blocks and workflow templates are referenced by id from other
records, so they are never removed. Archiving flips ``is_active`` and
stamps ``archived_at``; references held by existing templates and
workflow instances keep resolving.

Usage:
    @dataclass
    class MyRecord(Archivable):
        is_active: bool = True
        archived_at: datetime | None = None

    record.archive()
    active_only(records)
"""

from app.utils.helpers import utcnow


class Archivable:
    """Mixin for dataclass records carrying ``is_active`` and ``archived_at``."""

    def archive(self):
        """Mark this record as archived."""
        self.is_active = False
        self.archived_at = utcnow()

    def restore(self):
        """Make an archived record available again."""
        self.is_active = True
        self.archived_at = None

    @property
    def is_archived(self):
        return not self.is_active


def active_only(records):
    """Return the records that are not archived, preserving order."""
    return [r for r in records if r.is_active]
