"""
Health check Flask routes
"""

import logging
from http import HTTPStatus

from flask import Blueprint, current_app

LOG = logging.getLogger()

health_bp = Blueprint("healthchecks", __name__)


@health_bp.route("/")
@health_bp.route("/health")
def healthcheck():
    return ("OK", HTTPStatus.OK)  # 200


@health_bp.route("/health/config")
def config_healthcheck():
    # Report which optional features are usable without exposing any values.
    # Signature checking without a secret means every signed request fails.
    config = current_app.config["CARE_GUIDES"]
    status = {
        "signature_secret": bool(config.shared_secret),
        "allow_unsigned": config.allow_unsigned,
        "order_lookup": current_app.extensions.get("care_guides_resolver") is not None,
    }
    if not status["signature_secret"] and not config.allow_unsigned:
        LOG.warning("No signature secret configured and unsigned requests are rejected")
        return (status, HTTPStatus.SERVICE_UNAVAILABLE)  # 503
    return (status, HTTPStatus.OK)
