"""
Field Capture Orders
Inventory station capture model.

A station is one product's storage location, photographed twice:
the SIGN (product code, min/max) and the STOCK (on-hand count).
The two slots are uploaded independently; the station becomes 'ready'
once both are filled, and 'valid' / 'needs_attention' after extraction.

min_qty / max_qty / on_hand_qty are populated only while status == 'valid'.
"""

import uuid
from datetime import datetime, timezone

from fieldcapture.models import db


def _uuid():
    return str(uuid.uuid4())


class StationCapture(db.Model):
    """Paired sign + stock photo submission for one product."""

    __tablename__ = "station_captures"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    session_id = db.Column(
        db.String(36), db.ForeignKey("capture_sessions.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    status = db.Column(
        db.String(30), nullable=False, default="pending",
        comment="pending | ready | valid | needs_attention",
    )

    # Extraction-derived
    product_code = db.Column(db.String(100), nullable=True, index=True)
    min_qty = db.Column(db.Integer, nullable=True)
    max_qty = db.Column(db.Integer, nullable=True)
    on_hand_qty = db.Column(db.Integer, nullable=True)
    error_message = db.Column(db.Text, nullable=True)
    model_id = db.Column(db.String(100), nullable=True)
    extracted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Sign slot
    sign_blob_url = db.Column(db.String(1000), nullable=True)
    sign_width = db.Column(db.Integer, nullable=True)
    sign_height = db.Column(db.Integer, nullable=True)
    sign_uploaded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Stock slot
    stock_blob_url = db.Column(db.String(1000), nullable=True)
    stock_width = db.Column(db.Integer, nullable=True)
    stock_height = db.Column(db.Integer, nullable=True)
    stock_uploaded_at = db.Column(db.DateTime(timezone=True), nullable=True)

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
            "status IN ('pending','ready','valid','needs_attention')",
            name="ck_station_capture_status",
        ),
    )

    @property
    def blob_urls(self):
        return [u for u in (self.sign_blob_url, self.stock_blob_url) if u]

    @property
    def is_captured(self):
        return bool(self.sign_blob_url and self.stock_blob_url)

    def to_dict(self):
        return {
            "id": self.id,
            "session_id": self.session_id,
            "status": self.status,
            "product_code": self.product_code,
            "min_qty": self.min_qty,
            "max_qty": self.max_qty,
            "on_hand_qty": self.on_hand_qty,
            "error_message": self.error_message,
            "model_id": self.model_id,
            "extracted_at": self.extracted_at.isoformat() if self.extracted_at else None,
            "sign_blob_url": self.sign_blob_url,
            "sign_width": self.sign_width,
            "sign_height": self.sign_height,
            "sign_uploaded_at": self.sign_uploaded_at.isoformat() if self.sign_uploaded_at else None,
            "stock_blob_url": self.stock_blob_url,
            "stock_width": self.stock_width,
            "stock_height": self.stock_height,
            "stock_uploaded_at": self.stock_uploaded_at.isoformat() if self.stock_uploaded_at else None,
            "is_captured": self.is_captured,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<StationCapture {self.id} [{self.status}] {self.product_code or '-'}>"
