"""
Contact Request Blueprint.

Endpoints:
    POST /api/v1/contact-requests — message the challenge copilots/managers
"""

from flask import Blueprint, jsonify, request

from review_api.blueprints import current_identity
from review_api.services import contact_request_service

contact_request_bp = Blueprint("contact_request", __name__, url_prefix="/api/v1/contact-requests")


@contact_request_bp.route("", methods=["POST"])
def create_contact_request():
    data = request.get_json(silent=True) or {}
    result = contact_request_service.create_contact_request(current_identity(), data)
    return jsonify(result), 201
