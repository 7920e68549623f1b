from __future__ import annotations

import argparse
import base64
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, List, Optional

from dotenv import load_dotenv

from .config import load_config
from .handlers import (
    generate_dian_token_email_handler,
    get_dian_cookie_by_certificate_handler,
    get_rues_data_handler,
)
from .logging_config import configure_logging, configure_logging_from_config


logger = logging.getLogger("dian_rues_portal")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="dian_rues_portal")
    p.add_argument(
        "--env-file",
        default=".env",
        help="Path to a dotenv file (default: .env). If missing, env vars must already be set.",
    )
    p.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml; optional)")

    sub = p.add_subparsers(dest="cmd", required=True)

    rues = sub.add_parser("rues", help="Look up a company on rues.org.co by NIT/identification")
    rues.add_argument("identification", help="Identification number (NIT without check digit)")
    rues.add_argument("--headful", action="store_true", help="Run browser headful (debug)")

    token = sub.add_parser("dian-token-email", help="Ask DIAN to email a login token to the legal representative")
    token.add_argument("--identification-type", required=True, help="DIAN identification type code (e.g. 10910094)")
    token.add_argument("--user-code", required=True, help="Legal representative identification")
    token.add_argument("--company-code", required=True, help="Company NIT")
    token.add_argument("--origin", default=None, help="Free-form caller tag echoed back in the response")
    token.add_argument("--headful", action="store_true", help="Run browser headful (debug)")

    cert = sub.add_parser("dian-certificate-login", help="Log into DIAN with a P12 certificate and print cookies")
    cert.add_argument("--certificate", required=True, help="Path to the .p12/.pfx file")
    cert.add_argument(
        "--password-env",
        default="CERTIFICATE_PASSWORD",
        help="Env var holding the certificate password (default: CERTIFICATE_PASSWORD)",
    )
    cert.add_argument("--identification-type", required=True, help="DIAN identification type code")
    cert.add_argument("--nit", required=True, help="Legal representative NIT")
    cert.add_argument("--headful", action="store_true", help="Run browser headful (debug)")
    cert.add_argument(
        "--omit-screenshots",
        action="store_true",
        help="Drop base64 screenshots from the printed response (they are large).",
    )

    return p


def _print_response(response: dict[str, Any], *, omit: tuple[str, ...] = ()) -> int:
    body = json.loads(response["body"])
    for key in omit:
        body.pop(key, None)
    print(json.dumps({"statusCode": response["statusCode"], "body": body}, indent=2, ensure_ascii=False))
    return 0 if response["statusCode"] == 200 else 1


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    env_path = Path(args.env_file)
    if env_path.exists():
        load_dotenv(env_path)

    # Default logging: can be overridden once config is loaded.
    configure_logging(level=os.getenv("LOG_LEVEL", "INFO"))

    cfg = load_config(args.config)
    configure_logging_from_config(cfg)

    if args.cmd == "rues":
        event = {"identificationNumber": args.identification, "headless": not args.headful}
        return _print_response(get_rues_data_handler(event, config=cfg))

    if args.cmd == "dian-token-email":
        event = {
            "identificationType": args.identification_type,
            "userCode": args.user_code,
            "companyCode": args.company_code,
            "origin": args.origin,
            "headless": not args.headful,
        }
        return _print_response(generate_dian_token_email_handler(event, config=cfg), omit=("screenshot",))

    if args.cmd == "dian-certificate-login":
        cert_path = Path(args.certificate)
        if not cert_path.exists():
            raise SystemExit(f"Certificate not found: {cert_path}")
        password = os.getenv(args.password_env, "")
        if not password:
            logger.warning("%s is empty; trying the certificate without a password.", args.password_env)

        event = {
            "base64CertificateP12": base64.b64encode(cert_path.read_bytes()).decode("ascii"),
            "certificatePassword": password,
            "identificationType": args.identification_type,
            "nitRepresentanteLegal": args.nit,
            "headless": not args.headful,
        }
        omit = ("screenshots",) if args.omit_screenshots else ()
        return _print_response(get_dian_cookie_by_certificate_handler(event, config=cfg), omit=omit)

    raise SystemExit(f"Unknown command: {args.cmd}")


if __name__ == "__main__":
    sys.exit(main())
