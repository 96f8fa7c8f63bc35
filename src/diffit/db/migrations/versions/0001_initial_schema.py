"""Initial schema: projects, builds, snapshots, baselines, baseline pointers.

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

import sqlalchemy as sa
from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "projects",
        sa.Column("project_id", sa.String(128), primary_key=True),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("default_branch", sa.String(255), nullable=False),
        sa.Column("repository_url", sa.String(500), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_projects_slug", "projects", ["slug"], unique=True)

    op.create_table(
        "builds",
        sa.Column("build_id", sa.String(128), primary_key=True),
        sa.Column(
            "project_id",
            sa.String(128),
            sa.ForeignKey("projects.project_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("build_number", sa.Integer, nullable=False),
        sa.Column("branch", sa.String(255), nullable=False),
        sa.Column("commit_sha", sa.String(64), nullable=True),
        sa.Column("commit_message", sa.Text, nullable=True),
        sa.Column("pull_request_number", sa.Integer, nullable=True),
        sa.Column("expected_snapshots", sa.Integer, nullable=True),
        sa.Column("total_snapshots", sa.Integer, nullable=False, server_default="0"),
        sa.Column("changed_snapshots", sa.Integer, nullable=False, server_default="0"),
        sa.Column("approved_snapshots", sa.Integer, nullable=False, server_default="0"),
        sa.Column("failed_snapshots", sa.Integer, nullable=False, server_default="0"),
        sa.Column("new_snapshots", sa.Integer, nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("project_id", "build_number", name="uq_builds_project_number"),
    )
    op.create_index("ix_builds_project_id", "builds", ["project_id"])
    op.create_index("ix_builds_project_branch", "builds", ["project_id", "branch"])

    op.create_table(
        "snapshots",
        sa.Column("snapshot_id", sa.String(128), primary_key=True),
        sa.Column(
            "build_id",
            sa.String(128),
            sa.ForeignKey("builds.build_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("baseline_id", sa.String(128), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("browser", sa.String(100), nullable=False, server_default=""),
        sa.Column("viewport", sa.String(50), nullable=False, server_default=""),
        sa.Column("width", sa.Integer, nullable=True),
        sa.Column("height", sa.Integer, nullable=True),
        sa.Column("base_image_key", sa.String(500), nullable=True),
        sa.Column("comparison_image_key", sa.String(500), nullable=True),
        sa.Column("diff_image_key", sa.String(500), nullable=True),
        sa.Column("diff_percentage", sa.Float, nullable=False, server_default="0"),
        sa.Column("diff_pixels", sa.Integer, nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("failure_reason", sa.String(50), nullable=True),
        sa.Column("failure_message", sa.Text, nullable=True),
        sa.Column("review_status", sa.String(20), nullable=False, server_default="unreviewed"),
        sa.Column("reviewed_by", sa.String(200), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_snapshots_build_id", "snapshots", ["build_id"])
    op.create_index("ix_snapshots_baseline_id", "snapshots", ["baseline_id"])
    op.create_index("ix_snapshots_build_status", "snapshots", ["build_id", "status"])
    op.create_index("ix_snapshots_build_review", "snapshots", ["build_id", "review_status"])

    op.create_table(
        "baselines",
        sa.Column("baseline_id", sa.String(128), primary_key=True),
        sa.Column(
            "project_id",
            sa.String(128),
            sa.ForeignKey("projects.project_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("branch", sa.String(255), nullable=False),
        sa.Column("browser", sa.String(100), nullable=False, server_default=""),
        sa.Column("viewport", sa.String(50), nullable=False, server_default=""),
        sa.Column("width", sa.Integer, nullable=False),
        sa.Column("height", sa.Integer, nullable=False),
        sa.Column("image_key", sa.String(500), nullable=False),
        sa.Column("source_snapshot_id", sa.String(128), nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("is_current", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("retired_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_baselines_project_id", "baselines", ["project_id"])
    op.create_index(
        "ix_baselines_tuple", "baselines", ["project_id", "name", "branch", "browser", "viewport"]
    )

    op.create_table(
        "baseline_pointers",
        sa.Column("pointer_id", sa.String(128), primary_key=True),
        sa.Column(
            "project_id",
            sa.String(128),
            sa.ForeignKey("projects.project_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("branch", sa.String(255), nullable=False),
        sa.Column("browser", sa.String(100), nullable=False, server_default=""),
        sa.Column("viewport", sa.String(50), nullable=False, server_default=""),
        sa.Column("current_baseline_id", sa.String(128), nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint(
            "project_id", "name", "branch", "browser", "viewport", name="uq_baseline_pointers_tuple"
        ),
    )
    op.create_index("ix_baseline_pointers_project_id", "baseline_pointers", ["project_id"])


def downgrade() -> None:
    op.drop_table("baseline_pointers")
    op.drop_table("baselines")
    op.drop_table("snapshots")
    op.drop_table("builds")
    op.drop_table("projects")
