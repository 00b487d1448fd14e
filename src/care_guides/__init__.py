import dataclasses
import logging
import os
from dataclasses import dataclass

from flask import Flask

LOG = logging.getLogger()

DEFAULT_API_VERSION = "2025-01"
DEFAULT_STOREFRONT_BASE = "https://belgraveorchids.com.au"
DEFAULT_ALLOWED_ORIGINS = (
    "https://belgraveorchids.com.au",
    "https://www.belgraveorchids.com.au",
)

SEPARATORS = {"none": "", "": "", "&": "&"}
CANONICAL_SOURCES = ("raw", "parsed")

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}


class ConfigError(Exception):
    pass


def create_app(config, resolver=None):
    """
    Create the Flask app (also used for functional tests)

    When no resolver is passed one is built from the Shopify settings in the
    config; without a shop domain and admin token, order lookups are disabled.
    """
    app = Flask(__name__)
    app.config["CARE_GUIDES"] = config

    if resolver is None:
        from care_guides.shopify import resolver_from_config

        resolver = resolver_from_config(config)
    app.extensions["care_guides_resolver"] = resolver

    from care_guides import healthchecks, routes

    app.register_blueprint(healthchecks.health_bp)
    app.register_blueprint(routes.care_guides_bp)

    return app


def parse_bool(value: str, var: str) -> bool:
    lowered = value.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ConfigError(f"{var} must be a boolean, got {value!r}")


def parse_separator(value: str) -> str:
    try:
        return SEPARATORS[value.strip().lower()]
    except KeyError:
        raise ConfigError(f"Unknown signature separator {value!r} (use 'none' or '&')")


# read once at startup and passed explicitly into the app, never re-read per request
@dataclass(frozen=True)
class Config:
    shared_secret: str = dataclasses.field(default="", repr=False)
    allow_unsigned: bool = False
    signature_separator: str = ""
    canonical_source: str = "raw"
    shop_domain: str = ""
    admin_api_token: str = dataclasses.field(default="", repr=False)
    api_version: str = DEFAULT_API_VERSION
    storefront_base: str = DEFAULT_STOREFRONT_BASE
    allowed_origins: tuple = DEFAULT_ALLOWED_ORIGINS
    upstream_timeout: float = 10.0

    def __post_init__(self):
        if self.signature_separator not in ("", "&"):
            raise ConfigError(
                f"Unknown signature separator {self.signature_separator!r}"
            )
        if self.canonical_source not in CANONICAL_SOURCES:
            raise ConfigError(
                f"Unknown canonical source {self.canonical_source!r} "
                + f"(use one of {', '.join(CANONICAL_SOURCES)})"
            )

    def replace(self, **changes) -> "Config":
        return dataclasses.replace(self, **changes)

    @property
    def order_lookup_enabled(self) -> bool:
        return bool(self.shop_domain and self.admin_api_token)

    @classmethod
    def from_env(cls, environ=None) -> "Config":
        env = os.environ if environ is None else environ

        kwargs = {
            "shared_secret": env.get("SHOPIFY_APP_PROXY_SECRET")
            or env.get("SHOPIFY_API_SECRET", ""),
            "shop_domain": env.get("SHOPIFY_SHOP_DOMAIN", ""),
            "admin_api_token": env.get("SHOPIFY_ADMIN_API_TOKEN", ""),
            "api_version": env.get("SHOPIFY_API_VERSION") or DEFAULT_API_VERSION,
            "storefront_base": (
                env.get("STOREFRONT_BASE") or DEFAULT_STOREFRONT_BASE
            ).rstrip("/"),
        }

        if env.get("ALLOW_UNSIGNED"):
            kwargs["allow_unsigned"] = parse_bool(env["ALLOW_UNSIGNED"], "ALLOW_UNSIGNED")
        if env.get("SIGNATURE_SEPARATOR") is not None:
            kwargs["signature_separator"] = parse_separator(env["SIGNATURE_SEPARATOR"])
        if env.get("SIGNATURE_CANONICAL_SOURCE"):
            kwargs["canonical_source"] = env["SIGNATURE_CANONICAL_SOURCE"].strip().lower()
        if env.get("CORS_ALLOWED_ORIGINS"):
            kwargs["allowed_origins"] = tuple(
                o.strip().rstrip("/")
                for o in env["CORS_ALLOWED_ORIGINS"].split(",")
                if o.strip()
            )
        if env.get("SHOPIFY_TIMEOUT_SECONDS"):
            try:
                kwargs["upstream_timeout"] = float(env["SHOPIFY_TIMEOUT_SECONDS"])
            except ValueError:
                raise ConfigError("SHOPIFY_TIMEOUT_SECONDS must be a number")

        return cls(**kwargs)


# environment variable description for documentation/auto-configuration
@dataclass
class EnvVar:
    var: str = None
    help: str = None
    required: bool = False
    default: str = None


ENV_VARS = [
    EnvVar(
        var="SHOPIFY_APP_PROXY_SECRET",
        help="shared secret used to verify App Proxy request signatures",
        required=True,
    ),
    EnvVar(
        var="ALLOW_UNSIGNED",
        help="admit requests that carry no signature (tagged as unsigned)",
        default="false",
    ),
    EnvVar(
        var="SIGNATURE_SEPARATOR",
        help="separator between signed key=value pairs, must match the signer",
        default="none",
    ),
    EnvVar(
        var="SIGNATURE_CANONICAL_SOURCE",
        help="sign over the raw query string or the parsed parameters",
        default="raw",
    ),
    EnvVar(var="SHOPIFY_SHOP_DOMAIN", help="shop domain used for order lookups"),
    EnvVar(var="SHOPIFY_ADMIN_API_TOKEN", help="Admin API token used for order lookups"),
    EnvVar(
        var="SHOPIFY_API_VERSION",
        help="Admin API version",
        default=DEFAULT_API_VERSION,
    ),
    EnvVar(
        var="STOREFRONT_BASE",
        help="storefront base URL for care guide article links",
        default=DEFAULT_STOREFRONT_BASE,
    ),
    EnvVar(var="CORS_ALLOWED_ORIGINS", help="comma separated list of allowed origins"),
    EnvVar(var="SHOPIFY_TIMEOUT_SECONDS", help="Admin API request timeout", default="10"),
]
