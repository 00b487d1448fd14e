"""
Request handling for care guide lookups: signature check, trust policy, input
selection and response assembly. Every path returns a payload with an explicit
"ok" and an HTTP status.
"""

import logging
from http import HTTPStatus
from typing import Tuple

from care_guides.guides import collect_candidates, normalize_guides, parse_product_ids
from care_guides.policy import SERVER_NOT_CONFIGURED, Reject, decide
from care_guides.shopify import Failure, FailureKind
from care_guides.signing import QueryParameters, Verifier

LOG = logging.getLogger()

MAX_DETAIL_LENGTH = 200

ORDER_PARAM = "order"
PRODUCT_PARAMS = ("products", "product_id")

USAGE = (
    "Provide 'order' (order number), 'products' (comma separated product ids), "
    + "or 'guides'/'guide' (care guide URLs)"
)


def redact(text: str, secrets=(), limit: int = MAX_DETAIL_LENGTH) -> str:
    """
    Scrub secrets from an error message and truncate it for the response.
    """
    for secret in secrets:
        if secret:
            text = text.replace(secret, "[redacted]")
    if len(text) > limit:
        text = text[: limit - 3] + "..."
    return text


def _first(params: QueryParameters, name: str) -> str:
    value = params.get(name)
    if value is None:
        return ""
    if not isinstance(value, str):
        value = value[0] if value else ""
    return value.strip()


def _all(params: QueryParameters, name: str) -> list:
    value = params.get(name)
    if value is None:
        return []
    return [value] if isinstance(value, str) else list(value)


def _success(guides: list, signed: bool, mode: str, **meta) -> Tuple[dict, int]:
    meta = {"signed": signed, "count": len(guides), "mode": mode, **meta}
    return {"ok": True, "guides": guides, "meta": meta}, HTTPStatus.OK


def _failure(failure: Failure, config) -> Tuple[dict, int]:
    detail = redact(failure.detail, (config.shared_secret, config.admin_api_token))
    if failure.kind is FailureKind.UPSTREAM_UNAVAILABLE:
        error, status = "Upstream unavailable", HTTPStatus.SERVICE_UNAVAILABLE
    else:
        error, status = "Upstream data error", HTTPStatus.BAD_GATEWAY
    LOG.error(f"Care guides lookup failed ({failure.kind.value}): {detail}")
    return {"ok": False, "error": error, "detail": detail}, status


def handle_care_guides(params: QueryParameters, raw_query, config, resolver) -> Tuple[dict, int]:
    decision = decide(Verifier(config).check(params, raw_query), config.allow_unsigned)
    if isinstance(decision, Reject):
        LOG.warning(f"Rejected care guides request: {decision.detail}")
        return decision.payload(), decision.status
    signed = decision.verified

    order = _first(params, ORDER_PARAM)
    product_ids = parse_product_ids(
        value for name in PRODUCT_PARAMS for value in _all(params, name)
    )
    has_product_param = any(_first(params, name) for name in PRODUCT_PARAMS)
    candidates = collect_candidates(params)

    if not order and has_product_param and not product_ids:
        return {"ok": False, "error": "Bad request", "detail": USAGE}, HTTPStatus.BAD_REQUEST

    if order or has_product_param:
        if resolver is None:
            return {
                "ok": False,
                "error": SERVER_NOT_CONFIGURED,
                "detail": "Order lookup is not configured",
            }, HTTPStatus.INTERNAL_SERVER_ERROR

        if order:
            mode = "order"
            result = resolver.resolve_order(order)
        else:
            mode = "products"
            result = resolver.resolve_products(product_ids)

        if isinstance(result, Failure):
            if result.kind is not FailureKind.NOT_FOUND:
                return _failure(result, config)
            # an unknown order is a normal empty answer for the storefront
            guides, order_name = [], None
        else:
            guides, order_name = normalize_guides(result.urls), result.order_name

        if mode == "order":
            order_number = order.lstrip("#")
            return _success(
                guides,
                signed,
                mode,
                order=order_number,
                shopify_order=order_name or f"#{order_number}",
            )
        return _success(guides, signed, mode)

    if any(c.strip() for c in candidates):
        return _success(normalize_guides(candidates), signed, "guides")

    return {"ok": False, "error": "Bad request", "detail": USAGE}, HTTPStatus.BAD_REQUEST
