"""initial_capture_schema

Create capture sessions, loading-list groups/images/extraction results,
inventory stations and the scheduled job registry.

Revision ID: 7c1e2a9b4d10
Revises:
Create Date: 2026-10-16 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "7c1e2a9b4d10"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "capture_sessions" not in existing_tables:
        op.create_table(
            "capture_sessions",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("status", sa.String(length=40), nullable=False, server_default="draft"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "status IN ('draft','capturing_loading_lists','review_demand',"
                "'capturing_inventory','review_order','completed')",
                name="ck_capture_session_status",
            ),
        )
        op.create_index("ix_capture_sessions_created_at", "capture_sessions", ["created_at"])

    if "capture_groups" not in existing_tables:
        op.create_table(
            "capture_groups",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("session_id", sa.String(length=36), nullable=False),
            sa.Column("employee_label", sa.String(length=100), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="pending"),
            sa.Column("expected_image_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("failure_reason", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["session_id"], ["capture_sessions.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "status IN ('pending','ready','success','warning','error','needs_attention')",
                name="ck_capture_group_status",
            ),
            sa.CheckConstraint("expected_image_count >= 0", name="ck_capture_group_expected"),
        )
        op.create_index("ix_capture_groups_session_id", "capture_groups", ["session_id"])

    if "capture_images" not in existing_tables:
        op.create_table(
            "capture_images",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("group_id", sa.String(length=36), nullable=False),
            sa.Column("blob_url", sa.String(length=1000), nullable=False),
            sa.Column("capture_type", sa.String(length=20), nullable=False, server_default="uploaded_file"),
            sa.Column("order_index", sa.Integer(), nullable=False),
            sa.Column("width", sa.Integer(), nullable=True),
            sa.Column("height", sa.Integer(), nullable=True),
            sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("upload_validation_passed", sa.Boolean(), nullable=True),
            sa.Column("upload_validation_reason", sa.String(length=50), nullable=True),
            sa.Column("ai_classification_is_loading_list", sa.Boolean(), nullable=True),
            sa.Column("ai_classification_confidence", sa.Float(), nullable=True),
            sa.Column("ai_classification_reason", sa.Text(), nullable=True),
            sa.ForeignKeyConstraint(["group_id"], ["capture_groups.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("group_id", "order_index", name="uq_capture_image_group_order"),
            sa.CheckConstraint(
                "capture_type IN ('camera_photo','uploaded_file')",
                name="ck_capture_image_type",
            ),
        )
        op.create_index("ix_capture_images_group_id", "capture_images", ["group_id"])

    if "extraction_results" not in existing_tables:
        op.create_table(
            "extraction_results",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("group_id", sa.String(length=36), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("image_checks", sa.JSON(), nullable=True),
            sa.Column("activities", sa.JSON(), nullable=True),
            sa.Column("line_items", sa.JSON(), nullable=True),
            sa.Column("ignored_images", sa.JSON(), nullable=True),
            sa.Column("warnings", sa.JSON(), nullable=True),
            sa.Column("summary", sa.JSON(), nullable=True),
            sa.Column("total_cost", sa.Float(), nullable=True),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("model_id", sa.String(length=100), nullable=True),
            sa.Column("extracted_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["group_id"], ["capture_groups.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("group_id"),
            sa.CheckConstraint(
                "status IN ('success','warning','error')",
                name="ck_extraction_result_status",
            ),
        )

    if "station_captures" not in existing_tables:
        op.create_table(
            "station_captures",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("session_id", sa.String(length=36), nullable=False),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="pending"),
            sa.Column("product_code", sa.String(length=100), nullable=True),
            sa.Column("min_qty", sa.Integer(), nullable=True),
            sa.Column("max_qty", sa.Integer(), nullable=True),
            sa.Column("on_hand_qty", sa.Integer(), nullable=True),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("model_id", sa.String(length=100), nullable=True),
            sa.Column("extracted_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("sign_blob_url", sa.String(length=1000), nullable=True),
            sa.Column("sign_width", sa.Integer(), nullable=True),
            sa.Column("sign_height", sa.Integer(), nullable=True),
            sa.Column("sign_uploaded_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("stock_blob_url", sa.String(length=1000), nullable=True),
            sa.Column("stock_width", sa.Integer(), nullable=True),
            sa.Column("stock_height", sa.Integer(), nullable=True),
            sa.Column("stock_uploaded_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["session_id"], ["capture_sessions.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "status IN ('pending','ready','valid','needs_attention')",
                name="ck_station_capture_status",
            ),
        )
        op.create_index("ix_station_captures_session_id", "station_captures", ["session_id"])
        op.create_index("ix_station_captures_product_code", "station_captures", ["product_code"])

    if "scheduled_jobs" not in existing_tables:
        op.create_table(
            "scheduled_jobs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("job_name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.String(length=500), nullable=True),
            sa.Column("schedule_config", sa.JSON(), nullable=True),
            sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("last_run_status", sa.String(length=20), nullable=True),
            sa.Column("last_run_duration_ms", sa.Integer(), nullable=True),
            sa.Column("last_run_result", sa.JSON(), nullable=True),
            sa.Column("run_count", sa.Integer(), nullable=True),
            sa.Column("skip_count", sa.Integer(), nullable=True),
            sa.Column("error_count", sa.Integer(), nullable=True),
            sa.Column("last_error", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("job_name"),
        )


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "scheduled_jobs" in existing_tables:
        op.drop_table("scheduled_jobs")
    if "station_captures" in existing_tables:
        op.drop_index("ix_station_captures_product_code", table_name="station_captures")
        op.drop_index("ix_station_captures_session_id", table_name="station_captures")
        op.drop_table("station_captures")
    if "extraction_results" in existing_tables:
        op.drop_table("extraction_results")
    if "capture_images" in existing_tables:
        op.drop_index("ix_capture_images_group_id", table_name="capture_images")
        op.drop_table("capture_images")
    if "capture_groups" in existing_tables:
        op.drop_index("ix_capture_groups_session_id", table_name="capture_groups")
        op.drop_table("capture_groups")
    if "capture_sessions" in existing_tables:
        op.drop_index("ix_capture_sessions_created_at", table_name="capture_sessions")
        op.drop_table("capture_sessions")
