"""
Field Capture Orders
Loading-list capture models.

Models:
    - CaptureGroup:      batch of loading-list photos submitted together by one worker
    - CaptureImage:      one uploaded photo; order_index is dense and unique per group
    - ExtractionResult:  structured extraction output for a group (1:1, overwritten on re-extract)

Lifecycle states: see models/workflow.py (GROUP_TRANSITIONS).
"""

import uuid
from datetime import datetime, timezone

from fieldcapture.models import db


def _uuid():
    return str(uuid.uuid4())


class CaptureGroup(db.Model):
    """
    A batch of loading-list images.

    Created empty in 'pending' with the number of images the client is about
    to upload (expected_image_count). Promoted to 'ready' once the attached
    image count equals the expected count.
    """

    __tablename__ = "capture_groups"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    session_id = db.Column(
        db.String(36), db.ForeignKey("capture_sessions.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    employee_label = db.Column(db.String(100), nullable=True,
                               comment="Auto-numbered: Employee 1, Employee 2, ...")
    status = db.Column(
        db.String(30), nullable=False, default="pending",
        comment="pending | ready | success | warning | error | needs_attention",
    )
    expected_image_count = db.Column(db.Integer, nullable=False, default=0)
    failure_reason = db.Column(db.Text, nullable=True,
                               comment="Why the group needs attention (upload failure)")

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('pending','ready','success','warning','error','needs_attention')",
            name="ck_capture_group_status",
        ),
        db.CheckConstraint("expected_image_count >= 0", name="ck_capture_group_expected"),
    )

    images = db.relationship(
        "CaptureImage", backref="group", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="CaptureImage.order_index",
    )
    extraction = db.relationship(
        "ExtractionResult", backref="group", uselist=False,
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def to_dict(self, include_children=False):
        result = {
            "id": self.id,
            "session_id": self.session_id,
            "employee_label": self.employee_label,
            "status": self.status,
            "expected_image_count": self.expected_image_count,
            "failure_reason": self.failure_reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_children:
            result["images"] = [img.to_dict() for img in self.images]
            result["extraction"] = self.extraction.to_dict() if self.extraction else None
        return result

    def __repr__(self):
        return f"<CaptureGroup {self.id} [{self.status}]>"


class CaptureImage(db.Model):
    """One loading-list photo attached to a group."""

    __tablename__ = "capture_images"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    group_id = db.Column(
        db.String(36), db.ForeignKey("capture_groups.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    blob_url = db.Column(db.String(1000), nullable=False)
    capture_type = db.Column(db.String(20), nullable=False, default="uploaded_file",
                             comment="camera_photo | uploaded_file")
    order_index = db.Column(db.Integer, nullable=False)
    width = db.Column(db.Integer, nullable=True)
    height = db.Column(db.Integer, nullable=True)
    uploaded_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    upload_validation_passed = db.Column(db.Boolean, nullable=True)
    upload_validation_reason = db.Column(db.String(50), nullable=True,
                                         comment="not_portrait | file_too_large | unsupported_type")

    # Advisory hints written by extraction; never authoritative
    ai_classification_is_loading_list = db.Column(db.Boolean, nullable=True)
    ai_classification_confidence = db.Column(db.Float, nullable=True)
    ai_classification_reason = db.Column(db.Text, nullable=True)

    __table_args__ = (
        db.UniqueConstraint("group_id", "order_index", name="uq_capture_image_group_order"),
        db.CheckConstraint(
            "capture_type IN ('camera_photo','uploaded_file')",
            name="ck_capture_image_type",
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "group_id": self.group_id,
            "blob_url": self.blob_url,
            "capture_type": self.capture_type,
            "order_index": self.order_index,
            "width": self.width,
            "height": self.height,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
            "upload_validation_passed": self.upload_validation_passed,
            "upload_validation_reason": self.upload_validation_reason,
            "ai_classification_is_loading_list": self.ai_classification_is_loading_list,
            "ai_classification_confidence": self.ai_classification_confidence,
            "ai_classification_reason": self.ai_classification_reason,
        }

    def __repr__(self):
        return f"<CaptureImage {self.group_id}#{self.order_index}>"


class ExtractionResult(db.Model):
    """
    Extraction output for a CaptureGroup.

    line_items entries carry at least {primaryCode, quantity, activityCode}
    and optionally description; everything else the extractor returns is
    stored as-is.
    """

    __tablename__ = "extraction_results"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    group_id = db.Column(
        db.String(36), db.ForeignKey("capture_groups.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    status = db.Column(db.String(20), nullable=False,
                       comment="success | warning | error")
    image_checks = db.Column(db.JSON, default=list)
    activities = db.Column(db.JSON, default=list)
    line_items = db.Column(db.JSON, default=list)
    ignored_images = db.Column(db.JSON, default=list)
    warnings = db.Column(db.JSON, default=list)
    summary = db.Column(db.JSON, default=dict)
    total_cost = db.Column(db.Float, nullable=True)
    error_message = db.Column(db.Text, nullable=True)
    model_id = db.Column(db.String(100), nullable=True)
    extracted_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('success','warning','error')",
            name="ck_extraction_result_status",
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "group_id": self.group_id,
            "status": self.status,
            "image_checks": self.image_checks or [],
            "activities": self.activities or [],
            "line_items": self.line_items or [],
            "ignored_images": self.ignored_images or [],
            "warnings": self.warnings or [],
            "summary": self.summary or {},
            "total_cost": self.total_cost,
            "error_message": self.error_message,
            "model_id": self.model_id,
            "extracted_at": self.extracted_at.isoformat() if self.extracted_at else None,
        }

    def __repr__(self):
        return f"<ExtractionResult group={self.group_id} [{self.status}]>"
