"""
Care guide lookup routes (direct and via the Shopify App Proxy)
"""

import logging
from http import HTTPStatus

from flask import Blueprint, current_app, jsonify, request

from care_guides.relay import handle_care_guides
from care_guides.signing import query_parameters

LOG = logging.getLogger()

care_guides_bp = Blueprint("care_guides", __name__)


@care_guides_bp.after_app_request
def add_cors_headers(response):
    config = current_app.config["CARE_GUIDES"]
    origin = request.headers.get("Origin")
    if origin and origin in config.allowed_origins:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers.add("Vary", "Origin")
    response.headers["Access-Control-Allow-Methods"] = "GET,OPTIONS"
    response.headers["Access-Control-Allow-Headers"] = "Content-Type"
    return response


# Example: https://care-guides.mydomain.com/care-guides?order=1001
# Example: https://shop.example/apps/care-guides?guides=... (App Proxy -> /proxy/care-guides)
@care_guides_bp.route("/care-guides", methods=["GET", "OPTIONS"])
@care_guides_bp.route("/proxy/care-guides", methods=["GET", "OPTIONS"])
def care_guides():
    if request.method == "OPTIONS":
        return ("", HTTPStatus.NO_CONTENT)  # 204

    config = current_app.config["CARE_GUIDES"]
    resolver = current_app.extensions.get("care_guides_resolver")

    try:
        params = query_parameters(request.args)
    except UnicodeDecodeError:
        LOG.warning("Rejected care guides request: query string is not valid UTF-8")
        return (
            jsonify(
                {"ok": False, "error": "Bad request", "detail": "Query string is not valid UTF-8"}
            ),
            HTTPStatus.BAD_REQUEST,
        )

    try:
        payload, status = handle_care_guides(
            params,
            request.query_string,
            config,
            resolver,
        )
    except Exception as e:
        # exception text may carry upstream payloads, keep it in the logs only
        LOG.exception(f"Care guides lookup failed ({type(e).__name__})")
        payload, status = (
            {"ok": False, "error": "Care guides lookup failed"},
            HTTPStatus.INTERNAL_SERVER_ERROR,
        )

    return jsonify(payload), status
