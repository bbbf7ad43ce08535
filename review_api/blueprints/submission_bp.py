"""
Submission Blueprint — submission file download, access audit, artifacts.

Endpoints:
    GET    /api/v1/submissions/<id>/download                     — submission zip
    GET    /api/v1/submissions/<id>/access-audit                 — download audit (admin)
    POST   /api/v1/submissions/<id>/artifacts                    — multipart upload, field "file"
    GET    /api/v1/submissions/<id>/artifacts                    — visible artifacts
    GET    /api/v1/submissions/<id>/artifacts/<aid>/download     — artifact bytes
    DELETE /api/v1/submissions/<id>/artifacts/<aid>              — remove artifact
"""

import logging

from flask import Blueprint, jsonify, request

from review_api.blueprints import current_identity, file_response, parse_bool
from review_api.services import artifact_service, submission_service

logger = logging.getLogger(__name__)

submission_bp = Blueprint("submission", __name__, url_prefix="/api/v1/submissions")


@submission_bp.route("/<submission_id>/download", methods=["GET"])
def download_submission(submission_id):
    stream = submission_service.download_submission(current_identity(), submission_id)
    return file_response(stream)


@submission_bp.route("/<submission_id>/access-audit", methods=["GET"])
def list_access_audit(submission_id):
    items = submission_service.list_access_audit(submission_id)
    return jsonify({"items": items, "total": len(items)}), 200


@submission_bp.route("/<submission_id>/artifacts", methods=["POST"])
def create_artifact(submission_id):
    artifact = artifact_service.create_artifact(
        current_identity(),
        submission_id,
        request.files.get("file"),
        internal=parse_bool(request.form.get("internal")),
    )
    return jsonify(artifact), 201


@submission_bp.route("/<submission_id>/artifacts", methods=["GET"])
def list_artifacts(submission_id):
    items = artifact_service.list_artifacts(current_identity(), submission_id)
    return jsonify({"artifacts": items, "total": len(items)}), 200


@submission_bp.route("/<submission_id>/artifacts/<artifact_id>/download", methods=["GET"])
def download_artifact(submission_id, artifact_id):
    stream = artifact_service.get_artifact_stream(current_identity(), submission_id, artifact_id)
    return file_response(stream)


@submission_bp.route("/<submission_id>/artifacts/<artifact_id>", methods=["DELETE"])
def delete_artifact(submission_id, artifact_id):
    artifact_service.delete_artifact(current_identity(), submission_id, artifact_id)
    return "", 204
