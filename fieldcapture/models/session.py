"""
Field Capture Orders
Session model.

Architecture:
    CaptureSession ──1:N──▶ CaptureGroup ──1:N──▶ CaptureImage
                                        └──1:1──▶ ExtractionResult
    CaptureSession ──1:N──▶ StationCapture

Deleting a session removes every descendant row (ORM cascade + ON DELETE
CASCADE). Blob objects referenced by those rows are not part of the
transaction; see services/session_cleanup.py.
"""

import uuid
from datetime import datetime, timezone

from fieldcapture.models import db


def _uuid():
    return str(uuid.uuid4())


class CaptureSession(db.Model):
    """One end-to-end workflow instance: capture → demand review → inventory → order."""

    __tablename__ = "capture_sessions"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    status = db.Column(
        db.String(40), nullable=False, default="draft",
        comment="draft | capturing_loading_lists | review_demand | capturing_inventory | review_order | completed",
    )
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('draft','capturing_loading_lists','review_demand',"
            "'capturing_inventory','review_order','completed')",
            name="ck_capture_session_status",
        ),
    )

    groups = db.relationship(
        "CaptureGroup", backref="session", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="CaptureGroup.created_at",
    )
    stations = db.relationship(
        "StationCapture", backref="session", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="StationCapture.created_at",
    )

    def to_dict(self, include_counts=False):
        result = {
            "id": self.id,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_counts:
            result["group_count"] = self.groups.count()
            result["station_count"] = self.stations.count()
        return result

    def __repr__(self):
        return f"<CaptureSession {self.id} [{self.status}]>"
