"""
AI review workflows.

Hierarchy:
    LlmProvider 1──N LlmModel
    Scorecard, LlmModel 1──N AiWorkflow
    AiWorkflow 1──N AiWorkflowRun N──1 Submission
    AiWorkflowRun 1──N AiWorkflowRunItem 1──N AiWorkflowRunItemComment

Deleting a run cascades to its items and their comments.
"""

from review_api.models import _iso, _utcnow, _uuid, db

SCORECARD_STATUSES = frozenset({"ACTIVE", "INACTIVE", "DELETED"})

RUN_STATUSES = frozenset({"INIT", "QUEUED", "DISPATCHED", "IN_PROGRESS", "SUCCESS", "FAILURE", "CANCELLED"})


class LlmProvider(db.Model):
    __tablename__ = "llm_providers"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(100), nullable=False, unique=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    created_by = db.Column(db.String(64), nullable=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "createdAt": _iso(self.created_at)}


class LlmModel(db.Model):
    __tablename__ = "llm_models"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    provider_id = db.Column(
        db.String(36), db.ForeignKey("llm_providers.id", ondelete="CASCADE"), nullable=False
    )
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    created_by = db.Column(db.String(64), nullable=True)

    provider = db.relationship("LlmProvider")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "providerId": self.provider_id,
            "name": self.name,
            "description": self.description,
        }


class Scorecard(db.Model):
    """Minimal scorecard record referenced by workflows and run items."""

    __tablename__ = "scorecards"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="ACTIVE", comment="ACTIVE | INACTIVE | DELETED")
    minimum_passing_score = db.Column(db.Float, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "minimumPassingScore": self.minimum_passing_score,
        }


class AiWorkflow(db.Model):
    __tablename__ = "ai_workflows"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(255), nullable=False, unique=True)
    llm_id = db.Column(db.String(36), db.ForeignKey("llm_models.id"), nullable=False)
    description = db.Column(db.Text, nullable=False)
    def_url = db.Column(db.String(512), nullable=False, comment="Workflow definition URL")
    git_id = db.Column(db.String(255), nullable=False)
    git_owner = db.Column(db.String(255), nullable=False)
    scorecard_id = db.Column(db.String(36), db.ForeignKey("scorecards.id"), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    created_by = db.Column(db.String(64), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=_utcnow)
    updated_by = db.Column(db.String(64), nullable=True)

    llm = db.relationship("LlmModel")
    scorecard = db.relationship("Scorecard")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "llmId": self.llm_id,
            "description": self.description,
            "defUrl": self.def_url,
            "gitId": self.git_id,
            "gitOwner": self.git_owner,
            "scorecardId": self.scorecard_id,
            "createdAt": _iso(self.created_at),
            "createdBy": self.created_by,
            "updatedAt": _iso(self.updated_at),
            "updatedBy": self.updated_by,
        }

    def __repr__(self):
        return f"<AiWorkflow {self.id} {self.name!r}>"


class AiWorkflowRun(db.Model):
    """One execution of a workflow against a submission."""

    __tablename__ = "ai_workflow_runs"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    workflow_id = db.Column(
        db.String(36), db.ForeignKey("ai_workflows.id", ondelete="CASCADE"), nullable=False, index=True
    )
    submission_id = db.Column(
        db.String(36), db.ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    git_run_id = db.Column(db.String(255), nullable=True)
    score = db.Column(db.Float, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="INIT")

    workflow = db.relationship("AiWorkflow")
    submission = db.relationship("Submission")
    items = db.relationship(
        "AiWorkflowRunItem", back_populates="run",
        lazy="dynamic", cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.UniqueConstraint("workflow_id", "submission_id", name="uq_ai_workflow_run_workflow_submission"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workflowId": self.workflow_id,
            "submissionId": self.submission_id,
            "startedAt": _iso(self.started_at),
            "completedAt": _iso(self.completed_at),
            "gitRunId": self.git_run_id,
            "score": self.score,
            "status": self.status,
        }

    def __repr__(self):
        return f"<AiWorkflowRun {self.id} {self.status}>"


class AiWorkflowRunItem(db.Model):
    """Per-question output of a run. Votes are cast by challenge members."""

    __tablename__ = "ai_workflow_run_items"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    workflow_run_id = db.Column(
        db.String(36), db.ForeignKey("ai_workflow_runs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    scorecard_question_id = db.Column(db.String(36), nullable=False)
    content = db.Column(db.Text, nullable=False)
    up_votes = db.Column(db.Integer, nullable=False, default=0)
    down_votes = db.Column(db.Integer, nullable=False, default=0)
    question_score = db.Column(db.Float, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    created_by = db.Column(db.String(64), nullable=True)

    run = db.relationship("AiWorkflowRun", back_populates="items")
    comments = db.relationship(
        "AiWorkflowRunItemComment", back_populates="item",
        lazy="dynamic", cascade="all, delete-orphan",
    )

    def to_dict(self, include_comments: bool = False) -> dict:
        d = {
            "id": self.id,
            "workflowRunId": self.workflow_run_id,
            "scorecardQuestionId": self.scorecard_question_id,
            "content": self.content,
            "upVotes": self.up_votes,
            "downVotes": self.down_votes,
            "questionScore": self.question_score,
            "createdAt": _iso(self.created_at),
            "createdBy": self.created_by,
        }
        if include_comments:
            d["comments"] = [
                c.to_dict()
                for c in self.comments.order_by(AiWorkflowRunItemComment.created_at).all()
            ]
        return d


class AiWorkflowRunItemComment(db.Model):
    """Threaded comment on a run item, owned by ``user_id``."""

    __tablename__ = "ai_workflow_run_item_comments"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    workflow_run_item_id = db.Column(
        db.String(36),
        db.ForeignKey("ai_workflow_run_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = db.Column(db.String(64), nullable=False)
    content = db.Column(db.Text, nullable=False)
    parent_id = db.Column(
        db.String(36),
        db.ForeignKey("ai_workflow_run_item_comments.id", ondelete="CASCADE"),
        nullable=True,
    )
    up_votes = db.Column(db.Integer, nullable=False, default=0)
    down_votes = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    created_by = db.Column(db.String(64), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=_utcnow)
    updated_by = db.Column(db.String(64), nullable=True)

    item = db.relationship("AiWorkflowRunItem", back_populates="comments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workflowRunItemId": self.workflow_run_item_id,
            "userId": self.user_id,
            "content": self.content,
            "parentId": self.parent_id,
            "upVotes": self.up_votes,
            "downVotes": self.down_votes,
            "createdAt": _iso(self.created_at),
            "createdBy": self.created_by,
            "updatedAt": _iso(self.updated_at),
            "updatedBy": self.updated_by,
        }
