import hashlib
import hmac
import random

import pytest
from pytest_mock import MockFixture
from werkzeug.datastructures import MultiDict

from care_guides import Config
from care_guides.signing import (
    VerificationOutcome,
    Verifier,
    canonical_message,
    canonicalize,
    canonicalize_raw,
    extract_signature,
    query_parameters,
    sign,
    verify,
)

SECRET = "s3cr3t"

# Shopify's documented App Proxy example
SHOPIFY_PARAMS = {
    "extra": ["1", "2"],
    "shop": "some-shop.myshopify.com",
    "logged_in_customer_id": "",
    "path_prefix": "/apps/awesome_reviews",
    "timestamp": "1317327555",
}
SHOPIFY_SECRET = "hush"


def test_shopify_documented_example_message():
    """
    GIVEN the parameters from Shopify's App Proxy documentation
    WHEN canonicalized with no separator
    THEN repeated values are comma joined and names sorted with no separator
    """
    message = canonicalize(dict(SHOPIFY_PARAMS, signature="ignored"))
    assert message == (
        "extra=1,2"
        "logged_in_customer_id="
        "path_prefix=/apps/awesome_reviews"
        "shop=some-shop.myshopify.com"
        "timestamp=1317327555"
    )
    signature = sign(message, SHOPIFY_SECRET)
    assert verify(message, signature, SHOPIFY_SECRET) == VerificationOutcome.VERIFIED


def test_signature_is_never_part_of_message():
    params = {"a": "1", "signature": "deadbeef"}
    assert "signature" not in canonicalize(params)
    assert "signature" not in canonicalize_raw("a=1&signature=deadbeef")
    assert "signature" not in canonicalize_raw("signature=deadbeef&a=1", "&")


def test_ampersand_separator():
    params = {"b": "2", "a": "1", "c": ["x", "y"]}
    assert canonicalize(params, "&") == "a=1&b=2&c=x,y"
    assert canonicalize(params, "") == "a=1b=2c=x,y"


def test_canonicalize_is_order_independent():
    """
    Inserting the same parameters in any order gives the identical message.
    """
    items = [("shop", "x.myshopify.com"), ("timestamp", "1"), ("guide", "https://a.example/y"),
             ("path_prefix", "/apps/care"), ("Zeta", "upper")]
    expected = canonicalize(dict(items))
    rng = random.Random(7)
    for _ in range(20):
        rng.shuffle(items)
        assert canonicalize(dict(items)) == expected
        raw = "&".join(f"{k}={v}" for k, v in items)
        assert canonicalize_raw(raw) == expected


def test_names_sort_by_byte_order():
    # upper case sorts before lower case, names are case-sensitive
    assert canonicalize({"b": "1", "B": "2", "a": "3"}, "&") == "B=2&a=3&b=1"


def test_raw_mode_keeps_transport_encoding():
    """
    GIVEN a raw query string with percent-encoded and '+' characters
    WHEN canonicalized in raw mode
    THEN the encoded text is used as sent, not decoded or re-encoded
    """
    raw = "q=a+b&url=https%3A%2F%2Fa.example%2Fy&signature=abc"
    assert canonicalize_raw(raw, "&") == "q=a+b&url=https%3A%2F%2Fa.example%2Fy"


def test_raw_mode_edge_segments():
    assert canonicalize_raw(b"b=2&&a&c=x=y") == "a=b=2c=x=y"
    # repeated raw names are comma joined in received order
    assert canonicalize_raw("x=2&x=1&a=0", "&") == "a=0&x=2,1"
    # an encoded signature name is still excluded
    assert canonicalize_raw("sig%6Eature=abc&a=1") == "a=1"


def test_canonical_message_source_selection():
    params = {"q": "a b"}
    assert canonical_message(params, "q=a+b", "", "raw") == "q=a+b"
    assert canonical_message(params, "q=a+b", "", "parsed") == "q=a b"
    # no raw query available falls back to parsed parameters
    assert canonical_message(params, b"", "", "raw") == "q=a b"


def test_query_parameters_keeps_repeated_keys_distinct():
    params = query_parameters(MultiDict([("a", "1"), ("b", "x"), ("b", "y")]))
    assert params == {"a": "1", "b": ["x", "y"]}
    assert canonicalize(params) == canonicalize({"a": "1", "b": "x,y"})


def test_extract_signature():
    assert extract_signature({"signature": "abc"}) == "abc"
    assert extract_signature({"signature": ["abc", "def"]}) == "abc"
    assert extract_signature({"signature": ""}) is None
    assert extract_signature({"a": "1"}) is None


def test_sign_is_lowercase_hex_hmac_sha256():
    expected = hmac.new(b"k", b"m", hashlib.sha256).hexdigest()
    assert sign("m", "k") == expected
    assert sign("m", "k") == sign("m", "k").lower()
    assert len(sign("m", "k")) == 64


@pytest.mark.parametrize("message", ["", "guide=https://a.example/y", "é=ü&x=1"])
def test_round_trip(message):
    assert verify(message, sign(message, SECRET), SECRET) == VerificationOutcome.VERIFIED


def test_tampered_signature_is_invalid():
    message = "guide=https://a.example/y"
    signature = sign(message, SECRET)
    for i in range(len(signature)):
        flipped = "0" if signature[i] != "0" else "1"
        tampered = signature[:i] + flipped + signature[i + 1 :]
        assert verify(message, tampered, SECRET) == VerificationOutcome.INVALID


def test_tampered_message_is_invalid():
    message = "guide=https://a.example/y"
    signature = sign(message, SECRET)
    for i in range(len(message)):
        tampered = message[:i] + chr(ord(message[i]) ^ 1) + message[i + 1 :]
        assert verify(tampered, signature, SECRET) == VerificationOutcome.INVALID


def test_uppercase_signature_is_invalid():
    message = "a=1"
    assert verify(message, sign(message, SECRET).upper(), SECRET) == VerificationOutcome.INVALID


def test_missing_and_misconfigured():
    assert verify("a=1", None, SECRET) == VerificationOutcome.MISSING
    assert verify("a=1", "", SECRET) == VerificationOutcome.MISSING
    # a correct looking signature without a secret is a deployment error
    assert verify("a=1", sign("a=1", SECRET), "") == VerificationOutcome.MISCONFIGURED
    assert verify("a=1", sign("a=1", SECRET), None) == VerificationOutcome.MISCONFIGURED


def test_length_mismatch_skips_comparator(mocker: MockFixture):
    """
    Signatures of a different length are rejected before the constant-time
    comparator is invoked.
    """
    compare = mocker.patch("care_guides.signing.hmac.compare_digest")

    assert verify("a=1", "abc", SECRET) == VerificationOutcome.INVALID
    assert verify("a=1", sign("a=1", SECRET) + "0", SECRET) == VerificationOutcome.INVALID
    compare.assert_not_called()


def test_equal_length_uses_comparator(mocker: MockFixture):
    compare = mocker.spy(hmac, "compare_digest")

    assert verify("a=1", "0" * 64, SECRET) == VerificationOutcome.INVALID
    compare.assert_called_once()


def test_non_ascii_signature_does_not_raise():
    assert verify("a=1", "é" * 32, SECRET) == VerificationOutcome.INVALID


def test_verifier_uses_config_settings():
    raw = "guide=https%3A%2F%2Fa.example%2Fy&shop=x.myshopify.com"
    params = {"guide": "https://a.example/y", "shop": "x.myshopify.com"}

    raw_signature = sign("guide=https%3A%2F%2Fa.example%2Fy&shop=x.myshopify.com", SECRET)
    verifier = Verifier(Config(shared_secret=SECRET, signature_separator="&"))
    signed = dict(params, signature=raw_signature)
    assert verifier.check(signed, raw + "&signature=" + raw_signature) == VerificationOutcome.VERIFIED

    parsed_signature = sign("guide=https://a.example/yshop=x.myshopify.com", SECRET)
    verifier = Verifier(Config(shared_secret=SECRET, canonical_source="parsed"))
    signed = dict(params, signature=parsed_signature)
    assert verifier.check(signed, raw + "&signature=" + parsed_signature) == VerificationOutcome.VERIFIED


def test_raw_query_with_invalid_utf8_does_not_raise():
    """
    GIVEN a raw query string carrying a byte that is not valid UTF-8
    WHEN it is canonicalized and verified
    THEN the original bytes are signed and a wrong signature is simply invalid
    """
    message = canonicalize_raw(b"guide=\xff&signature=abc")

    assert verify(message, "0" * 64, SECRET) == VerificationOutcome.INVALID

    expected = hmac.new(SECRET.encode(), b"guide=\xff", hashlib.sha256).hexdigest()
    assert sign(message, SECRET) == expected
    assert verify(message, expected, SECRET) == VerificationOutcome.VERIFIED
