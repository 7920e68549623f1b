from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path
from typing import Optional

import pytest
from dotenv import dotenv_values

ROOT = Path(__file__).resolve().parents[1]


def _get_env_file() -> Optional[Path]:
    env_path = os.getenv("PORTAL_ENV_FILE")
    if env_path:
        return Path(env_path)

    default = ROOT / "portal.env"
    if default.exists():
        return default

    return None


def _build_env(env_file: Optional[Path]) -> dict[str, str]:
    env = os.environ.copy()
    if env_file is not None and env_file.exists():
        for key, value in dotenv_values(env_file).items():
            if value is None or key in env:
                continue
            env[key] = value
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(ROOT / "src"), env.get("PYTHONPATH", "")]))
    return env


def _skip_or_fail(reason: str) -> None:
    # Live portal tests need network, a Chromium build and (for DIAN) captcha credentials;
    # they should not fail local unit test runs by default. Set REQUIRE_PORTAL_TESTS=1 to force failures.
    if os.getenv("REQUIRE_PORTAL_TESTS") == "1":
        pytest.fail(reason)
    pytest.skip(reason)


def _run_cli(args: list[str], *, env: dict[str, str], env_file: Optional[Path]) -> dict:
    cmd = [sys.executable, "-m", "dian_rues_portal"]
    if env_file:
        cmd += ["--env-file", str(env_file)]
    timeout = int(os.getenv("PORTAL_SMOKE_TIMEOUT", "600"))
    proc = subprocess.run(cmd + args, cwd=ROOT, env=env, capture_output=True, text=True, timeout=timeout)
    return json.loads(proc.stdout)


@pytest.mark.portal
def test_rues_lookup() -> None:
    env_file = _get_env_file()
    env = _build_env(env_file)
    identification = env.get("PORTAL_SMOKE_RUES_ID")
    if not identification:
        _skip_or_fail("Missing PORTAL_SMOKE_RUES_ID (an identification known to exist on rues.org.co).")

    out = _run_cli(["rues", str(identification)], env=env, env_file=env_file)

    assert out["statusCode"] == 200, out
    assert out["body"]["data"]["tipo_empresa"]


@pytest.mark.portal
def test_dian_token_email() -> None:
    env_file = _get_env_file()
    env = _build_env(env_file)
    needed = ("PORTAL_SMOKE_DIAN_ID_TYPE", "PORTAL_SMOKE_DIAN_USER_CODE", "PORTAL_SMOKE_DIAN_COMPANY_CODE")
    missing = [k for k in needed if not env.get(k)]
    if missing:
        _skip_or_fail(f"Missing {', '.join(missing)}.")
    if not env.get("ANTICAPTCHA_API_KEY") and not (env.get("CAPTCHA_API_KEY") or env.get("TWOCAPTCHA_API_KEY")):
        _skip_or_fail("Missing captcha credentials (ANTICAPTCHA_API_KEY or CAPTCHA_API_KEY).")

    out = _run_cli(
        [
            "dian-token-email",
            "--identification-type",
            env["PORTAL_SMOKE_DIAN_ID_TYPE"],
            "--user-code",
            env["PORTAL_SMOKE_DIAN_USER_CODE"],
            "--company-code",
            env["PORTAL_SMOKE_DIAN_COMPANY_CODE"],
            "--origin",
            "smoke",
        ],
        env=env,
        env_file=env_file,
    )

    # The portal answers either way; a structured envelope is what matters here.
    assert out["statusCode"] in (200, 400), out
    assert out["body"]["origin"] == "smoke"
