"""General API routes for the stravaimport web app."""

from flask import Blueprint, jsonify

api_bp = Blueprint("api", __name__)


@api_bp.route("/health")
def health():
    """Health check endpoint."""
    return jsonify({"status": "healthy", "app": "stravaimport-web"})
