# Shopify App Proxy request signing: canonicalization of the query parameters
# and verification of the HMAC-SHA256 "signature" parameter.
#
# See:
# https://shopify.dev/docs/apps/build/online-store/display-dynamic-data#calculate-a-digital-signature
#
# NOTE:
# * The canonical message must be built exactly the way the signer built it, so
#   the pair separator and the raw vs parsed source are configuration.
# * Nothing in this module logs the secret, the message or the signature.

import enum
import hashlib
import hmac
import logging
from typing import Mapping, Optional, Sequence, Union
from urllib.parse import unquote_plus

LOG = logging.getLogger()

SIGNATURE_PARAM = "signature"

QueryValue = Union[str, Sequence[str]]
QueryParameters = Mapping[str, QueryValue]


class VerificationOutcome(enum.Enum):
    VERIFIED = "verified"
    MISSING = "missing"
    INVALID = "invalid"
    MISCONFIGURED = "misconfigured"


def query_parameters(multidict) -> dict:
    """
    Convert a werkzeug MultiDict (request.args) into QueryParameters, keeping a
    single value as a str and repeated keys as a list in the order received.
    """
    params = {}
    for key, values in multidict.lists():
        params[key] = values[0] if len(values) == 1 else list(values)
    return params


def _joined(value: QueryValue) -> str:
    if isinstance(value, str):
        return value
    return ",".join(value)


def canonicalize(params: QueryParameters, separator: str = "") -> str:
    """
    Canonical message from parsed parameters: drop the signature, join repeated
    values with commas, sort by name and render name=value pairs.
    """
    pairs = [
        f"{name}={_joined(value)}"
        for name, value in sorted(params.items())
        if name != SIGNATURE_PARAM
    ]
    return separator.join(pairs)


def canonicalize_raw(query_string: Union[str, bytes], separator: str = "") -> str:
    """
    Canonical message from the raw (still percent-encoded) query string.

    Each key=value segment is used as sent, so literal '+' or encoded slashes
    keep the exact bytes the signer saw.
    """
    if isinstance(query_string, bytes):
        query_string = query_string.decode("utf-8", errors="surrogateescape")

    grouped = {}
    for segment in query_string.split("&"):
        if not segment:
            continue
        name, _, value = segment.partition("=")
        if unquote_plus(name) == SIGNATURE_PARAM:
            continue
        grouped.setdefault(name, []).append(value)

    pairs = [f"{name}={','.join(values)}" for name, values in sorted(grouped.items())]
    return separator.join(pairs)


def canonical_message(
    params: QueryParameters,
    raw_query: Optional[Union[str, bytes]] = None,
    separator: str = "",
    source: str = "raw",
) -> str:
    if source == "raw" and raw_query:
        return canonicalize_raw(raw_query, separator)
    return canonicalize(params, separator)


def extract_signature(params: QueryParameters) -> Optional[str]:
    value = params.get(SIGNATURE_PARAM)
    if value is None:
        return None
    if not isinstance(value, str):
        value = value[0] if value else ""
    return value or None


def sign(message: str, secret: str) -> str:
    return hmac.new(
        secret.encode("utf-8"),
        # raw query bytes that are not UTF-8 come back as the original bytes
        message.encode("utf-8", errors="surrogateescape"),
        digestmod=hashlib.sha256,
    ).hexdigest()


def verify(message: str, signature: Optional[str], secret: Optional[str]) -> VerificationOutcome:
    """
    Compare the supplied signature against the HMAC of the canonical message.

    An unsigned request is MISSING whether or not a secret is configured (the
    trust policy decides if that is acceptable). A signed request without a
    secret to check it against is MISCONFIGURED, never INVALID.
    """
    if not signature:
        return VerificationOutcome.MISSING
    if not secret:
        return VerificationOutcome.MISCONFIGURED

    expected = sign(message, secret).encode("utf-8")
    supplied = signature.encode("utf-8", errors="surrogateescape")

    # length is not secret, skip the comparator when it already differs
    if len(expected) != len(supplied):
        return VerificationOutcome.INVALID

    if hmac.compare_digest(expected, supplied):
        return VerificationOutcome.VERIFIED
    return VerificationOutcome.INVALID


class Verifier:
    """
    Binds the shared secret and the canonicalization settings from Config.
    """

    def __init__(self, config):
        self._secret = config.shared_secret
        self._separator = config.signature_separator
        self._source = config.canonical_source

    def check(self, params: QueryParameters, raw_query=None) -> VerificationOutcome:
        signature = extract_signature(params)
        message = canonical_message(params, raw_query, self._separator, self._source)
        outcome = verify(message, signature, self._secret)
        LOG.debug(f"Signature check: {outcome.value}")
        return outcome
