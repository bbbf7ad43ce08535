"""review_api_initial_schema

Revision ID: 7c2e1a9b4d01
Revises:
Create Date: 2026-10-19 09:12:44.315027

Adds:
    - review_opportunities / review_applications: opportunity + application lifecycle
    - submissions / submission_artifacts / review_summations
    - submission_access_audits: append-only download audit
    - llm_providers / llm_models / scorecards / ai_workflows
    - ai_workflow_runs / ai_workflow_run_items / ai_workflow_run_item_comments
    - contact_requests
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '7c2e1a9b4d01'
down_revision = None
branch_labels = None
depends_on = None


def _audit_columns(updatable: bool = True):
    cols = [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_by", sa.String(64), nullable=True),
    ]
    if updatable:
        cols += [
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_by", sa.String(64), nullable=True),
        ]
    return cols


def upgrade():
    # ── Review opportunities & applications ──────────────────────────────
    op.create_table(
        "review_opportunities",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("challenge_id", sa.String(64), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("open_positions", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration", sa.Integer(), nullable=True),
        sa.Column("base_payment", sa.Float(), nullable=True),
        sa.Column("incremental_payment", sa.Float(), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("challenge_id", "type", name="uq_review_opportunity_challenge_type"),
    )
    op.create_index("ix_review_opportunities_challenge_id", "review_opportunities", ["challenge_id"])

    op.create_table(
        "review_applications",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("handle", sa.String(64), nullable=False),
        sa.Column("opportunity_id", sa.String(36), nullable=False),
        sa.Column("role", sa.String(40), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["opportunity_id"], ["review_opportunities.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "user_id", "opportunity_id", "role", name="uq_review_application_user_opportunity_role"
        ),
    )
    op.create_index("ix_review_applications_user_id", "review_applications", ["user_id"])
    op.create_index("ix_review_applications_opportunity_id", "review_applications", ["opportunity_id"])
    op.create_index(
        "ix_review_application_opportunity_status", "review_applications", ["opportunity_id", "status"]
    )

    # ── Submissions ──────────────────────────────────────────────────────
    op.create_table(
        "submissions",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("member_id", sa.String(64), nullable=False),
        sa.Column("challenge_id", sa.String(64), nullable=False),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("storage_key", sa.String(512), nullable=True),
        *_audit_columns(updatable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_submissions_member_id", "submissions", ["member_id"])
    op.create_index("ix_submissions_challenge_id", "submissions", ["challenge_id"])
    op.create_index("ix_submission_challenge_member", "submissions", ["challenge_id", "member_id"])

    op.create_table(
        "submission_artifacts",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("submission_id", sa.String(36), nullable=False),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("storage_key", sa.String(512), nullable=False),
        sa.Column("content_type", sa.String(120), nullable=True),
        sa.Column("is_internal", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_audit_columns(updatable=False),
        sa.ForeignKeyConstraint(["submission_id"], ["submissions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_submission_artifacts_submission_id", "submission_artifacts", ["submission_id"])

    op.create_table(
        "review_summations",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("submission_id", sa.String(36), nullable=False),
        sa.Column("aggregate_score", sa.Float(), nullable=False),
        sa.Column("is_passing", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_final", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reviewed_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["submission_id"], ["submissions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_review_summations_submission_id", "review_summations", ["submission_id"])

    op.create_table(
        "submission_access_audits",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("submission_id", sa.String(36), nullable=False),
        sa.Column("downloaded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("handle", sa.String(64), nullable=False),
        sa.ForeignKeyConstraint(["submission_id"], ["submissions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_submission_access_audit_submission", "submission_access_audits", ["submission_id", "downloaded_at"]
    )

    # ── AI workflows ─────────────────────────────────────────────────────
    op.create_table(
        "llm_providers",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        *_audit_columns(updatable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_table(
        "llm_models",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("provider_id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        *_audit_columns(updatable=False),
        sa.ForeignKeyConstraint(["provider_id"], ["llm_providers.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "scorecards",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("minimum_passing_score", sa.Float(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "ai_workflows",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("llm_id", sa.String(36), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("def_url", sa.String(512), nullable=False),
        sa.Column("git_id", sa.String(255), nullable=False),
        sa.Column("git_owner", sa.String(255), nullable=False),
        sa.Column("scorecard_id", sa.String(36), nullable=False),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["llm_id"], ["llm_models.id"]),
        sa.ForeignKeyConstraint(["scorecard_id"], ["scorecards.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_table(
        "ai_workflow_runs",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("workflow_id", sa.String(36), nullable=False),
        sa.Column("submission_id", sa.String(36), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("git_run_id", sa.String(255), nullable=True),
        sa.Column("score", sa.Float(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.ForeignKeyConstraint(["workflow_id"], ["ai_workflows.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["submission_id"], ["submissions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("workflow_id", "submission_id", name="uq_ai_workflow_run_workflow_submission"),
    )
    op.create_index("ix_ai_workflow_runs_workflow_id", "ai_workflow_runs", ["workflow_id"])
    op.create_index("ix_ai_workflow_runs_submission_id", "ai_workflow_runs", ["submission_id"])

    op.create_table(
        "ai_workflow_run_items",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("workflow_run_id", sa.String(36), nullable=False),
        sa.Column("scorecard_question_id", sa.String(36), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("up_votes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("down_votes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("question_score", sa.Float(), nullable=True),
        *_audit_columns(updatable=False),
        sa.ForeignKeyConstraint(["workflow_run_id"], ["ai_workflow_runs.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ai_workflow_run_items_workflow_run_id", "ai_workflow_run_items", ["workflow_run_id"])

    op.create_table(
        "ai_workflow_run_item_comments",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("workflow_run_item_id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("parent_id", sa.String(36), nullable=True),
        sa.Column("up_votes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("down_votes", sa.Integer(), nullable=False, server_default="0"),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["workflow_run_item_id"], ["ai_workflow_run_items.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["parent_id"], ["ai_workflow_run_item_comments.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_ai_workflow_run_item_comments_workflow_run_item_id",
        "ai_workflow_run_item_comments",
        ["workflow_run_item_id"],
    )

    # ── Contact requests ─────────────────────────────────────────────────
    op.create_table(
        "contact_requests",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("resource_id", sa.String(64), nullable=False),
        sa.Column("challenge_id", sa.String(64), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_contact_requests_challenge_id", "contact_requests", ["challenge_id"])


def downgrade():
    op.drop_table("contact_requests")
    op.drop_table("ai_workflow_run_item_comments")
    op.drop_table("ai_workflow_run_items")
    op.drop_table("ai_workflow_runs")
    op.drop_table("ai_workflows")
    op.drop_table("scorecards")
    op.drop_table("llm_models")
    op.drop_table("llm_providers")
    op.drop_table("submission_access_audits")
    op.drop_table("review_summations")
    op.drop_table("submission_artifacts")
    op.drop_table("submissions")
    op.drop_table("review_applications")
    op.drop_table("review_opportunities")
