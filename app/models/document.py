"""
OTI Tracker
Document store tables — one JSON document per entity collection.

Models:
    - CollectionDocument:  current payload of a collection (buildingBlocks,
                           workflowTemplates, otis, config/*)
    - CollectionBackup:    prior payloads, written before every overwrite

Collections are read and replaced whole; there are no row-level writes
of individual blocks, templates or OTIs.
"""

from datetime import datetime, timezone

from app.models import db


class CollectionDocument(db.Model):
    """Current JSON payload for one collection key."""

    __tablename__ = "collection_documents"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(
        db.String(100), unique=True, nullable=False, index=True,
        comment="Collection key, e.g. buildingBlocks | workflowTemplates | otis",
    )
    payload = db.Column(db.JSON, nullable=False)
    version = db.Column(
        db.Integer, nullable=False, default=1,
        comment="Increments on every successful save",
    )
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self):
        return f"<CollectionDocument {self.key} v{self.version}>"


class CollectionBackup(db.Model):
    """Prior version of a collection, kept so an overwrite can be undone."""

    __tablename__ = "collection_backups"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), nullable=False, index=True)
    payload = db.Column(db.JSON, nullable=False)
    version = db.Column(
        db.Integer, nullable=False,
        comment="Version of the document this payload was copied from",
    )
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("ix_collection_backup_key_version", "key", "version"),
    )

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "version": self.version,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<CollectionBackup {self.key} v{self.version}>"
