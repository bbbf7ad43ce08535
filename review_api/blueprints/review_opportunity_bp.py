"""
Review Opportunity Blueprint.

Endpoints:
    POST /api/v1/review-opportunities          — create (admin, copilot, M2M)
    GET  /api/v1/review-opportunities          — list, ?challengeId= &status=
    GET  /api/v1/review-opportunities/<id>     — single opportunity
"""

import logging

from flask import Blueprint, jsonify, request

from review_api.blueprints import current_identity
from review_api.services import review_opportunity_service

logger = logging.getLogger(__name__)

review_opportunity_bp = Blueprint(
    "review_opportunity", __name__, url_prefix="/api/v1/review-opportunities"
)


@review_opportunity_bp.route("", methods=["POST"])
def create_opportunity():
    data = request.get_json(silent=True) or {}
    opportunity = review_opportunity_service.create_opportunity(current_identity(), data)
    return jsonify(opportunity), 201


@review_opportunity_bp.route("", methods=["GET"])
def list_opportunities():
    items = review_opportunity_service.list_opportunities(
        challenge_id=request.args.get("challengeId"),
        status=request.args.get("status"),
    )
    return jsonify({"items": items, "total": len(items)}), 200


@review_opportunity_bp.route("/<opportunity_id>", methods=["GET"])
def get_opportunity(opportunity_id):
    return jsonify(review_opportunity_service.get_opportunity(opportunity_id)), 200
