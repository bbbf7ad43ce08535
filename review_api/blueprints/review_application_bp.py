"""
Review Application Blueprint.

Endpoints:
    POST  /api/v1/review-applications                              — apply (reviewer)
    GET   /api/v1/review-applications                              — all PENDING (admin)
    GET   /api/v1/review-applications/user/<user_id>               — by member (self or admin)
    GET   /api/v1/review-applications/history/<user_id>?range=60   — APPROVED in last N days
    GET   /api/v1/review-applications/opportunity/<id>             — by opportunity (public)
    PATCH /api/v1/review-applications/<id>/accept                  — approve (admin)
    PATCH /api/v1/review-applications/<id>/reject                  — reject (admin)
    PATCH /api/v1/review-applications/opportunity/<id>/reject-all  — reject all PENDING (admin)

Approve/reject responses carry ``warnings`` when the applicant e-mail failed;
the status change itself is already committed.
"""

import logging

from flask import Blueprint, jsonify, request

from review_api.blueprints import current_identity
from review_api.core.exceptions import ValidationError
from review_api.services import review_application_service

logger = logging.getLogger(__name__)

review_application_bp = Blueprint(
    "review_application", __name__, url_prefix="/api/v1/review-applications"
)


@review_application_bp.route("", methods=["POST"])
def create_application():
    data = request.get_json(silent=True) or {}
    application = review_application_service.create_application(current_identity(), data)
    return jsonify(application), 201


@review_application_bp.route("", methods=["GET"])
def list_pending():
    items = review_application_service.list_pending()
    return jsonify({"items": items, "total": len(items)}), 200


@review_application_bp.route("/user/<user_id>", methods=["GET"])
def list_by_user(user_id):
    items = review_application_service.list_by_user(current_identity(), user_id)
    return jsonify({"items": items, "total": len(items)}), 200


@review_application_bp.route("/history/<user_id>", methods=["GET"])
def get_history(user_id):
    raw = request.args.get("range")
    days = None
    if raw is not None:
        try:
            days = int(raw)
        except ValueError as exc:
            raise ValidationError("range must be an integer number of days") from exc
    items = review_application_service.get_history(current_identity(), user_id, days)
    return jsonify({"items": items, "total": len(items)}), 200


@review_application_bp.route("/opportunity/<opportunity_id>", methods=["GET"])
def list_by_opportunity(opportunity_id):
    items = review_application_service.list_by_opportunity(opportunity_id)
    return jsonify({"items": items, "total": len(items)}), 200


@review_application_bp.route("/<application_id>/accept", methods=["PATCH"])
def approve_application(application_id):
    result = review_application_service.approve_application(current_identity(), application_id)
    return jsonify(result), 200


@review_application_bp.route("/<application_id>/reject", methods=["PATCH"])
def reject_application(application_id):
    result = review_application_service.reject_application(current_identity(), application_id)
    return jsonify(result), 200


@review_application_bp.route("/opportunity/<opportunity_id>/reject-all", methods=["PATCH"])
def reject_all_pending(opportunity_id):
    result = review_application_service.reject_all_pending(current_identity(), opportunity_id)
    return jsonify(result), 200
