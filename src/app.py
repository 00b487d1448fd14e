#!/usr/bin/env python3

import argparse
import logging
import os
import sys

from care_guides import ENV_VARS, Config, ConfigError, create_app, parse_separator

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
LOG = logging.getLogger()

DEFAULT_PORT = 3000


def env_help() -> str:
    """
    Create help string showing env variables used by this application. This extends what argparse
    displays beyond just direct command line arguments.
    """
    help = "Environment variables:\n"
    for v in ENV_VARS:
        help += f" {v.var} = {v.help}"

        # add any details to the help printout (required / default values)
        details = []
        if v.required:
            details.append("required")
        if v.default:
            details.append(f"default {v.default}")
        if details:
            help += " (" + "; ".join(details) + ")"
        help += "\n"
    return help


def build_config(args, environ=None) -> Config:
    config = Config.from_env(environ)

    overrides = {}
    if args.allow_unsigned is not None:
        overrides["allow_unsigned"] = args.allow_unsigned
    if args.separator is not None:
        overrides["signature_separator"] = parse_separator(args.separator)
    if args.canonical_source is not None:
        overrides["canonical_source"] = args.canonical_source
    return config.replace(**overrides) if overrides else config


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description="Care guide lookups for Shopify storefronts and App Proxy requests",
        epilog=env_help(),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("--host", help="listener host", default="0.0.0.0")
    p.add_argument(
        "--port",
        help="listener port (PORT env var)",
        type=int,
        default=int(os.environ.get("PORT", DEFAULT_PORT)),
    )
    p.add_argument("--cert", help="SSL cert", default=None)
    p.add_argument("--key", help="SSL key", default=None)

    p.add_argument(
        "--allow-unsigned",
        dest="allow_unsigned",
        default=None,
        action=argparse.BooleanOptionalAction,
        help="admit requests without an App Proxy signature (overrides ALLOW_UNSIGNED)",
    )
    p.add_argument(
        "--separator",
        choices=["none", "&"],
        default=None,
        help="separator between signed key=value pairs (overrides SIGNATURE_SEPARATOR)",
    )
    p.add_argument(
        "--canonical-source",
        dest="canonical_source",
        choices=["raw", "parsed"],
        default=None,
        help="canonicalize the raw query string or parsed parameters",
    )
    p.add_argument(
        "--help-env-vars",
        dest="help_env_vars",
        action="store_true",
        help="display environment vars used by this service",
    )
    p.add_argument("-d", "--debug", action="store_true", help="verbose logging")
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    if args.help_env_vars:
        print(env_help())
        sys.exit(1)

    if args.debug:
        logging.getLogger().setLevel(level=logging.DEBUG)

    try:
        config = build_config(args)
    except ConfigError as e:
        LOG.fatal(f"Invalid configuration: {e}")
        sys.exit(1)

    if not config.shared_secret:
        LOG.warning("SHOPIFY_APP_PROXY_SECRET is not set, signed requests will be rejected")
    if config.allow_unsigned:
        LOG.warning("Unsigned requests are ADMITTED (responses are tagged signed=false)")

    app = create_app(config)

    ssl_context = (args.cert, args.key) if args.cert and args.key else None
    LOG.info(f"Care guides proxy listening on {args.host}:{args.port}")
    app.run(host=args.host, port=args.port, debug=args.debug, ssl_context=ssl_context)


if __name__ == "__main__":
    main()
