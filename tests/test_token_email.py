from __future__ import annotations

from typing import Any, Optional

from dian_rues_portal.captcha.providers import TwoCaptchaProvider
from dian_rues_portal.captcha.solver import ChallengeSolver
from dian_rues_portal.config import AppConfig, DebugConfig
from dian_rues_portal.dian import turnstile
from dian_rues_portal.dian.modal_guard import STATE_GLOBAL
from dian_rues_portal.dian.selectors import DianSelectors, DianUrls
from dian_rues_portal.dian.token_email import DianTokenEmailClient
from dian_rues_portal.models import DianTokenEmailPayload


SEL = DianSelectors()
SUCCESS = "Se ha enviado un token de acceso al correo electrónico registrado."


class _Resp:
    def __init__(self, payload: Any) -> None:
        self._payload = payload

    def raise_for_status(self) -> None:
        return None

    def json(self) -> Any:
        return self._payload


class _TwoCaptchaHttp:
    def __init__(self) -> None:
        self.polls = 0

    def post(self, url: str, **_kwargs: Any) -> _Resp:
        if url.endswith("/in.php"):
            return _Resp({"status": 1, "request": "job-9"})
        self.polls += 1
        if self.polls < 2:
            return _Resp({"status": 0, "request": "CAPCHA_NOT_READY"})
        return _Resp({"status": 1, "request": "TURNSTILE-TOKEN"})


class _BrokenProvider:
    name = "anticaptcha"

    def solve_turnstile(self, site_key: str, page_url: str) -> Optional[str]:
        raise RuntimeError("ERROR_ZERO_BALANCE")


class _Element:
    def __init__(self, text: str) -> None:
        self._text = text

    def inner_text(self) -> str:
        return self._text

    def evaluate(self, _expression: str) -> bool:
        return True


class _Locator:
    def __init__(self, page: "_FakeDianPage", selector: str) -> None:
        self.page = page
        self.selector = selector

    def wait_for(self, **_kwargs: Any) -> None:
        return None

    def click(self, **kwargs: Any) -> None:
        self.page.clicks.append((self.selector, bool(kwargs.get("force"))))
        if self.selector == SEL.submit_button:
            self.page.submitted = True


class _FakeDianPage:
    url = DianUrls().company_login

    def __init__(self, *, outcome: dict[str, str], fail_goto: bool = False) -> None:
        self.outcome = outcome
        self.fail_goto = fail_goto
        self.init_scripts: list[str] = []
        self.clicks: list[tuple[str, bool]] = []
        self.selected: dict[str, str] = {}
        self.filled: dict[str, str] = {}
        self.injected: Optional[dict[str, str]] = None
        self.submitted = False

    def add_init_script(self, script: str) -> None:
        self.init_scripts.append(script)

    def goto(self, url: str, **_kwargs: Any) -> None:
        if self.fail_goto:
            raise RuntimeError("net::ERR_CONNECTION_RESET")

    def wait_for_function(self, *_args: Any, **_kwargs: Any) -> None:
        return None

    def wait_for_timeout(self, _ms: float) -> None:
        return None

    def wait_for_selector(self, *_args: Any, **_kwargs: Any) -> None:
        return None

    def locator(self, selector: str) -> _Locator:
        return _Locator(self, selector)

    def select_option(self, selector: str, value: str) -> None:
        self.selected[selector] = value

    def fill(self, selector: str, value: str) -> None:
        self.filled[selector] = value

    def get_attribute(self, selector: str, name: str) -> Optional[str]:
        assert selector == SEL.captcha_container and name == "data-sitekey"
        return "0x4AAAAAAA-dian"

    def evaluate(self, expression: str, arg: Any = None) -> Any:
        if expression == turnstile._INJECT_TOKEN_JS:
            self.injected = arg
            return None
        if "sessionStorage" in expression:
            return None
        if STATE_GLOBAL in expression:
            return {"lastError": None, "blockedRedirects": []}
        return ""

    def query_selector(self, selector: str) -> Optional[_Element]:
        if self.submitted and selector in self.outcome:
            return _Element(self.outcome[selector])
        return None

    def eval_on_selector(self, _selector: str, _expression: str) -> str:
        return ""

    def is_closed(self) -> bool:
        return False

    def screenshot(self, **_kwargs: Any) -> bytes:
        return b"\x89PNG fake"


class _FakeSession:
    def __init__(self, page: _FakeDianPage) -> None:
        self.page = page
        self.kwargs: dict[str, Any] = {}
        self.closed = False

    def __call__(self, **kwargs: Any) -> "_FakeSession":
        self.kwargs = kwargs
        return self

    def __enter__(self) -> "_FakeSession":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.closed = True

    def new_page(self, **_kwargs: Any) -> _FakeDianPage:
        return self.page


def _payload(**overrides: Any) -> DianTokenEmailPayload:
    data = {"identificationType": "10910094", "userCode": "1020304050", "companyCode": "900123456", "origin": "crm"}
    data.update(overrides)
    return DianTokenEmailPayload(**data)


def _solver(http: _TwoCaptchaHttp) -> ChallengeSolver:
    fallback = TwoCaptchaProvider(api_key="k", session=http, sleep=lambda _s: None)  # type: ignore[arg-type]
    return ChallengeSolver([_BrokenProvider(), fallback])


def test_missing_fields_are_all_listed_without_opening_a_browser() -> None:
    def no_session(**_kwargs: Any) -> None:
        raise AssertionError("browser session must not be created")

    client = DianTokenEmailClient(config=AppConfig(), solver=ChallengeSolver([]), session_factory=no_session)

    result = client.run(DianTokenEmailPayload(identificationType="10910094", userCode=" ", origin="crm"))

    assert result.success is False
    assert result.error == "Campos obligatorios faltantes: userCode, companyCode"
    assert result.origin == "crm"
    assert result.screenshot is None


def test_captcha_fallback_token_is_injected_and_form_submitted() -> None:
    http = _TwoCaptchaHttp()
    page = _FakeDianPage(outcome={SEL.success_alert: SUCCESS})
    session = _FakeSession(page)
    client = DianTokenEmailClient(config=AppConfig(), solver=_solver(http), session_factory=session)

    result = client.run(_payload(headless=True))

    assert result.success is True
    assert result.message == SUCCESS
    assert result.origin == "crm"
    assert http.polls == 2
    assert page.injected == {"selector": SEL.captcha_response_input, "solution": "TURNSTILE-TOKEN"}
    assert page.submitted
    assert page.selected == {SEL.identification_type: "10910094"}
    assert page.filled == {SEL.user_code: "1020304050", SEL.company_code: "900123456"}
    assert len(page.init_scripts) == 1
    assert session.kwargs["headless"] is True
    assert session.closed


def test_portal_error_alert_fails_with_its_text_and_screenshot() -> None:
    page = _FakeDianPage(
        outcome={SEL.success_alert: SUCCESS, SEL.error_alert: "El usuario no pertenece a la empresa"}
    )
    client = DianTokenEmailClient(
        config=AppConfig(), solver=_solver(_TwoCaptchaHttp()), session_factory=_FakeSession(page)
    )

    result = client.run(_payload())

    assert result.success is False
    assert result.error == "El usuario no pertenece a la empresa"
    assert result.screenshot is not None


def test_unsolved_captcha_is_a_flow_failure() -> None:
    page = _FakeDianPage(outcome={})
    client = DianTokenEmailClient(
        config=AppConfig(debug=DebugConfig(screenshot_on_error=False)),
        solver=ChallengeSolver([_BrokenProvider()]),
        session_factory=_FakeSession(page),
    )

    result = client.run(_payload())

    assert result.success is False
    assert result.error == "No se pudo resolver el captcha Turnstile"
    assert result.screenshot is None
    assert page.submitted is False


def test_navigation_failure_is_reported() -> None:
    page = _FakeDianPage(outcome={}, fail_goto=True)
    session = _FakeSession(page)
    client = DianTokenEmailClient(config=AppConfig(), solver=ChallengeSolver([]), session_factory=session)

    result = client.run(_payload())

    assert result.success is False
    assert "ERR_CONNECTION_RESET" in (result.error or "")
    assert session.closed


def test_browser_launch_failure_is_reported() -> None:
    def broken_session(**_kwargs: Any) -> None:
        raise RuntimeError("Executable doesn't exist")

    client = DianTokenEmailClient(config=AppConfig(), solver=ChallengeSolver([]), session_factory=broken_session)

    result = client.run(_payload())

    assert result.success is False
    assert result.error == "Executable doesn't exist"
    assert result.screenshot is None
