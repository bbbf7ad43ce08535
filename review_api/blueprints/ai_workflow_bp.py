"""
AI Workflow Blueprint.

Endpoints:
  Workflows:   POST  /api/v1/workflows
               GET   /api/v1/workflows/<wid>
               PATCH /api/v1/workflows/<wid>
  Runs:        POST  /api/v1/workflows/<wid>/runs
               GET   /api/v1/workflows/<wid>/runs?submissionId=
               GET   /api/v1/workflows/<wid>/runs/<rid>
               PATCH /api/v1/workflows/<wid>/runs/<rid>
  Run items:   POST  /api/v1/workflows/<wid>/runs/<rid>/items
               GET   /api/v1/workflows/<wid>/runs/<rid>/items
               PATCH /api/v1/workflows/<wid>/runs/<rid>/items/<iid>
  Comments:    POST  /api/v1/workflows/<wid>/runs/<rid>/items/<iid>/comments
               PATCH /api/v1/workflows/<wid>/runs/<rid>/items/<iid>/comments/<cid>

Route roles/scopes live in middleware.route_guards; challenge-level access
to run data is decided in ai_workflow_service.
"""

import logging

from flask import Blueprint, jsonify, request

from review_api.blueprints import current_identity
from review_api.services import ai_workflow_service

logger = logging.getLogger(__name__)

ai_workflow_bp = Blueprint("ai_workflow", __name__, url_prefix="/api/v1/workflows")


# ═════════════════════════════════════════════════════════════════════════════
# Workflows
# ═════════════════════════════════════════════════════════════════════════════


@ai_workflow_bp.route("", methods=["POST"])
def create_workflow():
    data = request.get_json(silent=True) or {}
    return jsonify(ai_workflow_service.create_workflow(current_identity(), data)), 201


@ai_workflow_bp.route("/<workflow_id>", methods=["GET"])
def get_workflow(workflow_id):
    return jsonify(ai_workflow_service.get_workflow(workflow_id)), 200


@ai_workflow_bp.route("/<workflow_id>", methods=["PATCH"])
def update_workflow(workflow_id):
    data = request.get_json(silent=True) or {}
    return jsonify(ai_workflow_service.update_workflow(current_identity(), workflow_id, data)), 200


# ═════════════════════════════════════════════════════════════════════════════
# Runs
# ═════════════════════════════════════════════════════════════════════════════


@ai_workflow_bp.route("/<workflow_id>/runs", methods=["POST"])
def create_run(workflow_id):
    data = request.get_json(silent=True) or {}
    return jsonify(ai_workflow_service.create_workflow_run(current_identity(), workflow_id, data)), 201


@ai_workflow_bp.route("/<workflow_id>/runs", methods=["GET"])
def list_runs(workflow_id):
    runs = ai_workflow_service.get_workflow_runs(
        current_identity(), workflow_id, submission_id=request.args.get("submissionId")
    )
    return jsonify({"items": runs, "total": len(runs)}), 200


@ai_workflow_bp.route("/<workflow_id>/runs/<run_id>", methods=["GET"])
def get_run(workflow_id, run_id):
    runs = ai_workflow_service.get_workflow_runs(current_identity(), workflow_id, run_id=run_id)
    return jsonify(runs[0]), 200


@ai_workflow_bp.route("/<workflow_id>/runs/<run_id>", methods=["PATCH"])
def update_run(workflow_id, run_id):
    data = request.get_json(silent=True) or {}
    run = ai_workflow_service.update_workflow_run(current_identity(), workflow_id, run_id, data)
    return jsonify(run), 200


# ═════════════════════════════════════════════════════════════════════════════
# Run items and comments
# ═════════════════════════════════════════════════════════════════════════════


@ai_workflow_bp.route("/<workflow_id>/runs/<run_id>/items", methods=["POST"])
def create_run_items(workflow_id, run_id):
    data = request.get_json(silent=True)
    items = data.get("items") if isinstance(data, dict) else data
    created = ai_workflow_service.create_run_items(current_identity(), workflow_id, run_id, items)
    return jsonify({"items": created, "total": len(created)}), 201


@ai_workflow_bp.route("/<workflow_id>/runs/<run_id>/items", methods=["GET"])
def list_run_items(workflow_id, run_id):
    items = ai_workflow_service.get_run_items(current_identity(), workflow_id, run_id)
    return jsonify({"items": items, "total": len(items)}), 200


@ai_workflow_bp.route("/<workflow_id>/runs/<run_id>/items/<item_id>", methods=["PATCH"])
def update_run_item(workflow_id, run_id, item_id):
    data = request.get_json(silent=True) or {}
    item = ai_workflow_service.update_run_item(current_identity(), workflow_id, run_id, item_id, data)
    return jsonify(item), 200


@ai_workflow_bp.route("/<workflow_id>/runs/<run_id>/items/<item_id>/comments", methods=["POST"])
def create_comment(workflow_id, run_id, item_id):
    data = request.get_json(silent=True) or {}
    comment = ai_workflow_service.create_comment(current_identity(), workflow_id, run_id, item_id, data)
    return jsonify(comment), 201


@ai_workflow_bp.route(
    "/<workflow_id>/runs/<run_id>/items/<item_id>/comments/<comment_id>", methods=["PATCH"]
)
def update_comment(workflow_id, run_id, item_id, comment_id):
    data = request.get_json(silent=True) or {}
    comment = ai_workflow_service.update_comment(
        current_identity(), workflow_id, run_id, item_id, comment_id, data
    )
    return jsonify(comment), 200
