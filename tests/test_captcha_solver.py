from __future__ import annotations

from typing import Any, Optional

import pytest

from dian_rues_portal.captcha.providers import AntiCaptchaProvider, TwoCaptchaProvider
from dian_rues_portal.captcha.solver import ChallengeSolver
from dian_rues_portal.config import CaptchaConfig


class _FakeResponse:
    def __init__(self, payload: Any) -> None:
        self._payload = payload

    def raise_for_status(self) -> None:
        return None

    def json(self) -> Any:
        return self._payload


class _FakeSession:
    """
    Replays queued responses per URL suffix; an Exception instance in the queue is raised instead.
    """

    def __init__(self, responses: dict[str, list[Any]]) -> None:
        self._responses = {k: list(v) for k, v in responses.items()}
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def post(self, url: str, **kwargs: Any) -> _FakeResponse:
        self.calls.append((url, kwargs))
        for suffix, queue in self._responses.items():
            if url.endswith(suffix):
                item = queue.pop(0)
                if isinstance(item, Exception):
                    raise item
                return _FakeResponse(item)
        raise AssertionError(f"unexpected POST {url}")


class _StaticProvider:
    def __init__(self, name: str, token: Optional[str] = None, error: Optional[Exception] = None) -> None:
        self.name = name
        self._token = token
        self._error = error
        self.calls = 0

    def solve_turnstile(self, site_key: str, page_url: str) -> Optional[str]:
        self.calls += 1
        if self._error is not None:
            raise self._error
        return self._token


def _two_captcha(session: _FakeSession, sleeps: list[float], max_attempts: int = 15) -> TwoCaptchaProvider:
    return TwoCaptchaProvider(
        api_key="k",
        base_url="https://2captcha.test",
        poll_interval_seconds=7,
        max_attempts=max_attempts,
        session=session,  # type: ignore[arg-type]
        sleep=sleeps.append,
    )


def test_falls_back_to_second_provider_after_two_polls() -> None:
    primary = _StaticProvider("anticaptcha", error=RuntimeError("ERROR_NO_SLOT_AVAILABLE"))
    session = _FakeSession(
        {
            "/in.php": [{"status": 1, "request": "job-1"}],
            "/res.php": [{"status": 0, "request": "CAPCHA_NOT_READY"}, {"status": 1, "request": "TOKEN-ABC"}],
        }
    )
    sleeps: list[float] = []
    solver = ChallengeSolver([primary, _two_captcha(session, sleeps)])

    token = solver.solve("0x4AAAA-site", "https://catalogo-vpfe.dian.gov.co/User/CompanyLogin")

    assert token == "TOKEN-ABC"
    assert primary.calls == 1
    assert sleeps == [7]
    submit_url, submit_kwargs = session.calls[0]
    assert submit_url == "https://2captcha.test/in.php"
    assert submit_kwargs["data"]["method"] == "turnstile"
    assert submit_kwargs["data"]["sitekey"] == "0x4AAAA-site"
    assert [url for url, _ in session.calls[1:]] == ["https://2captcha.test/res.php"] * 2


def test_empty_token_moves_on_and_all_failing_returns_none() -> None:
    a = _StaticProvider("a", token="")
    b = _StaticProvider("b", error=TimeoutError("slow"))
    solver = ChallengeSolver([a, b])

    assert solver.solve("site", "https://example.test") is None
    assert a.calls == 1
    assert b.calls == 1


def test_no_providers_returns_none() -> None:
    assert ChallengeSolver([]).solve("site", "https://example.test") is None


def test_poll_error_counts_as_not_ready() -> None:
    session = _FakeSession(
        {
            "/in.php": [{"status": 1, "request": "job-2"}],
            "/res.php": [ConnectionError("reset"), {"status": 1, "request": "TOKEN-XYZ"}],
        }
    )
    assert _two_captcha(session, []).solve_turnstile("site", "https://example.test") == "TOKEN-XYZ"


def test_two_captcha_gives_up_after_max_attempts() -> None:
    session = _FakeSession(
        {
            "/in.php": [{"status": 1, "request": "job-3"}],
            "/res.php": [{"status": 0, "request": "CAPCHA_NOT_READY"}] * 3,
        }
    )
    sleeps: list[float] = []
    assert _two_captcha(session, sleeps, max_attempts=3).solve_turnstile("site", "https://example.test") is None
    assert sleeps == [7, 7]


def test_two_captcha_rejected_submission_returns_none() -> None:
    session = _FakeSession({"/in.php": [{"status": 0, "request": "ERROR_WRONG_USER_KEY"}]})
    assert _two_captcha(session, []).solve_turnstile("site", "https://example.test") is None
    assert len(session.calls) == 1


def test_anticaptcha_create_and_poll() -> None:
    session = _FakeSession(
        {
            "/createTask": [{"errorId": 0, "taskId": 42}],
            "/getTaskResult": [
                {"errorId": 0, "status": "processing"},
                {"errorId": 0, "status": "ready", "solution": {"token": "ANTI-TOKEN"}},
            ],
        }
    )
    provider = AntiCaptchaProvider(
        api_key="k",
        base_url="https://anti.test",
        poll_interval_seconds=0,
        session=session,  # type: ignore[arg-type]
        sleep=lambda _s: None,
    )

    assert provider.solve_turnstile("site", "https://example.test") == "ANTI-TOKEN"
    create_body = session.calls[0][1]["json"]
    assert create_body["task"]["type"] == "TurnstileTaskProxyless"
    assert create_body["task"]["websiteKey"] == "site"


def test_anticaptcha_error_id_raises() -> None:
    session = _FakeSession({"/createTask": [{"errorId": 1, "errorCode": "ERROR_KEY_DOES_NOT_EXIST"}]})
    provider = AntiCaptchaProvider(api_key="k", session=session, sleep=lambda _s: None)  # type: ignore[arg-type]
    with pytest.raises(RuntimeError, match="ERROR_KEY_DOES_NOT_EXIST"):
        provider.solve_turnstile("site", "https://example.test")


def test_from_config_only_includes_configured_providers() -> None:
    assert ChallengeSolver.from_config(CaptchaConfig()).providers == []

    solver = ChallengeSolver.from_config(CaptchaConfig(anticaptcha_api_key="a", twocaptcha_api_key="b"))
    assert [p.name for p in solver.providers] == ["anticaptcha", "2captcha"]

    solver = ChallengeSolver.from_config(CaptchaConfig(twocaptcha_api_key="b"))
    assert [p.name for p in solver.providers] == ["2captcha"]
