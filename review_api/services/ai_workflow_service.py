"""
AI Workflow Service — workflows, runs, run items and item comments.

Run data is reached through its submission, so every read or member write
below a run passes ``authorization.check_run_access`` for that submission.
Admin and machine callers pass without any lookup.

Write permissions:
    workflow create/update        admin / machine (route guard)
    run create                    machine (route guard, create:workflow-run)
    run update, item create       admin / machine
    item update                   run access; members may only vote
    comment create                run access
    comment update                run access + comment author only
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from review_api.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from review_api.models import db
from review_api.models.ai_workflow import (
    RUN_STATUSES,
    AiWorkflow,
    AiWorkflowRun,
    AiWorkflowRunItem,
    AiWorkflowRunItemComment,
    LlmModel,
    Scorecard,
)
from review_api.models.submission import Submission
from review_api.services import authorization as authz
from review_api.services.helpers.db_errors import translate_integrity_error
from review_api.services.helpers.lookups import fetch_challenge, fetch_member_roles

logger = logging.getLogger(__name__)

_WORKFLOW_FIELDS = {
    "name": "name",
    "description": "description",
    "defUrl": "def_url",
    "gitId": "git_id",
    "gitOwner": "git_owner",
    "llmId": "llm_id",
    "scorecardId": "scorecard_id",
}
_WORKFLOW_REQUIRED = ("name", "llmId", "description", "defUrl", "gitId", "gitOwner", "scorecardId")

_VOTE_FIELDS = {"upVotes": "up_votes", "downVotes": "down_votes"}
_ITEM_ADMIN_FIELDS = {"content": "content", "questionScore": "question_score"}

_COMMENT_IMMUTABLE = ("parentId", "userId", "workflowRunItemId")


# ── Helpers ──────────────────────────────────────────────────────────────────


def _parse_datetime(value, field: str):
    if value in (None, ""):
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValidationError(f"{field} must be an ISO-8601 timestamp", details={field: value}) from exc


def _vote_count(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{field} must be a non-negative integer", details={field: value})
    return value


def _score(value, field: str):
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{field} must be numeric", details={field: value})
    return float(value)


def _require_admin(identity, action: str) -> None:
    if not identity.is_admin:
        logger.warning("Access denied user=%s: %s requires admin or machine", identity.user_id, action,
                       extra={"user_id": identity.user_id})
        raise ForbiddenError(f"Only administrators or machine callers can {action}")


def _validate_references(scorecard_id: str | None, llm_id: str | None) -> None:
    if scorecard_id is not None:
        scorecard = db.session.get(Scorecard, scorecard_id)
        if scorecard is None or scorecard.status != "ACTIVE":
            raise ValidationError(f"Active scorecard with id {scorecard_id} does not exist",
                                  details={"scorecardId": scorecard_id})
    if llm_id is not None:
        if db.session.get(LlmModel, llm_id) is None:
            raise ValidationError(f"LLM model with id {llm_id} does not exist",
                                  details={"llmId": llm_id})


def _get_workflow_or_404(workflow_id: str) -> AiWorkflow:
    workflow = db.session.get(AiWorkflow, workflow_id)
    if workflow is None:
        raise NotFoundError("AiWorkflow", workflow_id)
    return workflow


def _get_run_or_404(workflow_id: str, run_id: str) -> AiWorkflowRun:
    _get_workflow_or_404(workflow_id)
    run = db.session.get(AiWorkflowRun, run_id)
    if run is None or run.workflow_id != workflow_id:
        raise NotFoundError("AiWorkflowRun", run_id)
    return run


def _get_item_or_404(run: AiWorkflowRun, item_id: str) -> AiWorkflowRunItem:
    item = db.session.get(AiWorkflowRunItem, item_id)
    if item is None or item.workflow_run_id != run.id:
        raise NotFoundError("AiWorkflowRunItem", item_id)
    return item


def _check_run_access(identity, submission) -> None:
    authz.check_run_access(
        identity,
        submission,
        role_lookup=fetch_member_roles,
        challenge_lookup=fetch_challenge,
    )


def _accessible_run(identity, workflow_id: str, run_id: str) -> AiWorkflowRun:
    run = _get_run_or_404(workflow_id, run_id)
    _check_run_access(identity, run.submission)
    return run


# ═════════════════════════════════════════════════════════════════════════════
# Workflows
# ═════════════════════════════════════════════════════════════════════════════


def create_workflow(identity, data: dict) -> dict:
    """Create a workflow bound to an ACTIVE scorecard and an existing LLM model.

    Raises:
        ValidationError: Missing fields or an invalid scorecard/LLM reference.
        ConflictError: The workflow name is taken.
    """
    missing = [f for f in _WORKFLOW_REQUIRED if not data.get(f)]
    if missing:
        raise ValidationError("Missing required fields", details={"missing": missing})

    _validate_references(data["scorecardId"], data["llmId"])

    workflow = AiWorkflow(
        **{attr: data[key] for key, attr in _WORKFLOW_FIELDS.items()},
        created_by=identity.user_id,
        updated_by=identity.user_id,
    )
    db.session.add(workflow)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise translate_integrity_error(exc, "AiWorkflow", "name", data["name"]) from exc

    logger.info("AI workflow created", extra={"user_id": identity.user_id, "workflow_id": workflow.id})
    return workflow.to_dict()


def get_workflow(workflow_id: str) -> dict:
    return _get_workflow_or_404(workflow_id).to_dict()


def update_workflow(identity, workflow_id: str, data: dict) -> dict:
    workflow = _get_workflow_or_404(workflow_id)

    unknown = sorted(set(data) - set(_WORKFLOW_FIELDS))
    if unknown:
        raise ValidationError("Unknown or immutable fields", details={"fields": unknown})

    _validate_references(data.get("scorecardId"), data.get("llmId"))

    for key, attr in _WORKFLOW_FIELDS.items():
        if key in data:
            if not data[key]:
                raise ValidationError(f"{key} cannot be empty")
            setattr(workflow, attr, data[key])
    workflow.updated_by = identity.user_id
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise translate_integrity_error(exc, "AiWorkflow", "name", data.get("name")) from exc
    return workflow.to_dict()


# ═════════════════════════════════════════════════════════════════════════════
# Runs
# ═════════════════════════════════════════════════════════════════════════════


def create_workflow_run(identity, workflow_id: str, data: dict) -> dict:
    """Record a run of ``workflow_id`` against a submission.

    A missing workflow or submission is a referential mismatch (400), not a
    missing route resource.
    """
    if db.session.get(AiWorkflow, workflow_id) is None:
        raise ValidationError(f"Workflow with id {workflow_id} does not exist",
                              details={"workflowId": workflow_id})
    submission_id = data.get("submissionId")
    if not submission_id:
        raise ValidationError("submissionId is required")
    if db.session.get(Submission, submission_id) is None:
        raise ValidationError(f"Submission with id {submission_id} does not exist",
                              details={"submissionId": submission_id})

    status = (data.get("status") or "INIT").upper()
    if status not in RUN_STATUSES:
        raise ValidationError(f"Unknown run status '{status}'", details={"valid": sorted(RUN_STATUSES)})

    key = f"{workflow_id},{submission_id}"
    duplicate = db.session.execute(
        select(AiWorkflowRun.id).where(
            AiWorkflowRun.workflow_id == workflow_id,
            AiWorkflowRun.submission_id == submission_id,
        )
    ).first()
    if duplicate is not None:
        raise ConflictError("AiWorkflowRun", "workflowId,submissionId", key)

    run = AiWorkflowRun(
        workflow_id=workflow_id,
        submission_id=submission_id,
        started_at=_parse_datetime(data.get("startedAt"), "startedAt"),
        completed_at=_parse_datetime(data.get("completedAt"), "completedAt"),
        git_run_id=data.get("gitRunId"),
        score=_score(data.get("score"), "score"),
        status=status,
    )
    db.session.add(run)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise translate_integrity_error(exc, "AiWorkflowRun", "workflowId,submissionId", key) from exc

    logger.info("AI workflow run created", extra={"user_id": identity.user_id, "run_id": run.id})
    return run.to_dict()


def get_workflow_runs(identity, workflow_id: str, submission_id: str | None = None,
                      run_id: str | None = None) -> list[dict]:
    """Runs of a workflow the caller may see.

    With an explicit ``run_id`` or ``submission_id`` a denied access check
    raises ForbiddenError. Without a filter, runs on submissions the caller
    cannot access are left out of the result.
    """
    if db.session.get(AiWorkflow, workflow_id) is None:
        raise ValidationError(f"Workflow with id {workflow_id} does not exist",
                              details={"workflowId": workflow_id})

    stmt = select(AiWorkflowRun).where(AiWorkflowRun.workflow_id == workflow_id)
    if run_id:
        stmt = stmt.where(AiWorkflowRun.id == run_id)
    if submission_id:
        stmt = stmt.where(AiWorkflowRun.submission_id == submission_id)
    runs = db.session.execute(stmt.order_by(AiWorkflowRun.started_at)).scalars().all()

    if run_id and not runs:
        raise NotFoundError("AiWorkflowRun", run_id)
    if identity.is_admin or not runs:
        return [r.to_dict() for r in runs]

    explicit = bool(run_id or submission_id)
    allowed: dict[str, bool] = {}
    visible = []
    for run in runs:
        if run.submission_id not in allowed:
            try:
                _check_run_access(identity, run.submission)
                allowed[run.submission_id] = True
            except ForbiddenError:
                if explicit:
                    raise
                allowed[run.submission_id] = False
        if allowed[run.submission_id]:
            visible.append(run.to_dict())
    return visible


def update_workflow_run(identity, workflow_id: str, run_id: str, data: dict) -> dict:
    _require_admin(identity, "update workflow runs")
    run = _get_run_or_404(workflow_id, run_id)

    if "status" in data:
        status = (data.get("status") or "").upper()
        if status not in RUN_STATUSES:
            raise ValidationError(f"Unknown run status '{status}'", details={"valid": sorted(RUN_STATUSES)})
        run.status = status
    if "score" in data:
        run.score = _score(data["score"], "score")
    if "completedAt" in data:
        run.completed_at = _parse_datetime(data["completedAt"], "completedAt")
    if "startedAt" in data:
        run.started_at = _parse_datetime(data["startedAt"], "startedAt")
    if "gitRunId" in data:
        run.git_run_id = data["gitRunId"]

    db.session.commit()
    logger.info("AI workflow run %s updated status=%s", run.id, run.status,
                extra={"user_id": identity.user_id})
    return run.to_dict()


# ═════════════════════════════════════════════════════════════════════════════
# Run items
# ═════════════════════════════════════════════════════════════════════════════


def create_run_items(identity, workflow_id: str, run_id: str, items: list) -> list[dict]:
    _require_admin(identity, "create workflow run items")
    run = _get_run_or_404(workflow_id, run_id)
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    created = []
    for index, data in enumerate(items):
        if not isinstance(data, dict) or not data.get("scorecardQuestionId") or not data.get("content"):
            raise ValidationError("Each item needs scorecardQuestionId and content", details={"index": index})
        item = AiWorkflowRunItem(
            workflow_run_id=run.id,
            scorecard_question_id=data["scorecardQuestionId"],
            content=data["content"],
            up_votes=_vote_count(data.get("upVotes", 0), "upVotes"),
            down_votes=_vote_count(data.get("downVotes", 0), "downVotes"),
            question_score=_score(data.get("questionScore"), "questionScore"),
            created_by=identity.user_id,
        )
        db.session.add(item)
        created.append(item)
    db.session.commit()
    logger.info("Created %d items on run %s", len(created), run.id, extra={"user_id": identity.user_id})
    return [i.to_dict() for i in created]


def get_run_items(identity, workflow_id: str, run_id: str) -> list[dict]:
    run = _accessible_run(identity, workflow_id, run_id)
    items = run.items.order_by(AiWorkflowRunItem.created_at).all()
    return [i.to_dict(include_comments=True) for i in items]


def update_run_item(identity, workflow_id: str, run_id: str, item_id: str, data: dict) -> dict:
    """Members with run access may vote; content and score belong to admin/machine."""
    run = _accessible_run(identity, workflow_id, run_id)
    item = _get_item_or_404(run, item_id)

    if "scorecardQuestionId" in data:
        raise ValidationError("scorecardQuestionId cannot be updated")
    admin_fields = sorted(set(data) & set(_ITEM_ADMIN_FIELDS))
    if admin_fields and not identity.is_admin:
        logger.warning("Access denied user=%s: item fields %s are admin only", identity.user_id,
                       admin_fields, extra={"user_id": identity.user_id})
        raise ForbiddenError("Only administrators can change run item content or score",
                             details={"fields": admin_fields})
    unknown = sorted(set(data) - set(_VOTE_FIELDS) - set(_ITEM_ADMIN_FIELDS))
    if unknown:
        raise ValidationError("Unknown fields", details={"fields": unknown})

    for key, attr in _VOTE_FIELDS.items():
        if key in data:
            setattr(item, attr, _vote_count(data[key], key))
    if "content" in data:
        if not data["content"]:
            raise ValidationError("content cannot be empty")
        item.content = data["content"]
    if "questionScore" in data:
        item.question_score = _score(data["questionScore"], "questionScore")

    db.session.commit()
    return item.to_dict()


# ═════════════════════════════════════════════════════════════════════════════
# Comments
# ═════════════════════════════════════════════════════════════════════════════


def create_comment(identity, workflow_id: str, run_id: str, item_id: str, data: dict) -> dict:
    run = _accessible_run(identity, workflow_id, run_id)
    item = _get_item_or_404(run, item_id)

    content = (data.get("content") or "").strip()
    if not content:
        raise ValidationError("content is required")
    if not identity.user_id:
        raise ValidationError("Comments require a user identity")

    parent_id = data.get("parentId")
    if parent_id:
        parent = db.session.get(AiWorkflowRunItemComment, parent_id)
        if parent is None or parent.workflow_run_item_id != item.id:
            raise ValidationError(f"Parent comment {parent_id} does not belong to this item",
                                  details={"parentId": parent_id})

    comment = AiWorkflowRunItemComment(
        workflow_run_item_id=item.id,
        user_id=str(identity.user_id),
        content=content,
        parent_id=parent_id or None,
        created_by=identity.user_id,
        updated_by=identity.user_id,
    )
    db.session.add(comment)
    db.session.commit()
    return comment.to_dict()


def update_comment(identity, workflow_id: str, run_id: str, item_id: str, comment_id: str,
                   data: dict) -> dict:
    """Only the author may edit a comment, administrators included."""
    run = _accessible_run(identity, workflow_id, run_id)
    item = _get_item_or_404(run, item_id)
    comment = db.session.get(AiWorkflowRunItemComment, comment_id)
    if comment is None or comment.workflow_run_item_id != item.id:
        raise NotFoundError("AiWorkflowRunItemComment", comment_id)

    authz.check_comment_owner(identity, comment)

    immutable = [f for f in _COMMENT_IMMUTABLE if f in data]
    if immutable:
        raise ValidationError("Fields cannot be updated", details={"fields": immutable})

    if "content" in data:
        content = (data.get("content") or "").strip()
        if not content:
            raise ValidationError("content cannot be empty")
        comment.content = content
    for key, attr in _VOTE_FIELDS.items():
        if key in data:
            setattr(comment, attr, _vote_count(data[key], key))
    comment.updated_by = identity.user_id

    db.session.commit()
    return comment.to_dict()
