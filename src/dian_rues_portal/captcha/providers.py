from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional, Protocol

import requests


logger = logging.getLogger(__name__)


class CaptchaProvider(Protocol):
    name: str

    def solve_turnstile(self, site_key: str, page_url: str) -> Optional[str]:
        ...


class AntiCaptchaProvider:
    """
    Turnstile via the anti-captcha.com JSON API (createTask + getTaskResult).
    """

    name = "anticaptcha"

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://api.anti-captcha.com",
        poll_interval_seconds: float = 3,
        timeout_seconds: float = 120,
        request_timeout_seconds: float = 30,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._poll_interval = poll_interval_seconds
        self._timeout = timeout_seconds
        self._request_timeout = request_timeout_seconds
        self._session = session or requests.Session()
        self._sleep = sleep
        self._clock = clock

    def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        resp = self._session.post(f"{self._base_url}/{path}", json=body, timeout=self._request_timeout)
        resp.raise_for_status()
        data = resp.json()
        if int(data.get("errorId") or 0) != 0:
            raise RuntimeError(f"{data.get('errorCode') or 'ERROR'}: {data.get('errorDescription') or ''}".strip())
        return data

    def solve_turnstile(self, site_key: str, page_url: str) -> Optional[str]:
        created = self._post(
            "createTask",
            {
                "clientKey": self._api_key,
                "task": {"type": "TurnstileTaskProxyless", "websiteURL": page_url, "websiteKey": site_key},
                "softId": 0,
            },
        )
        task_id = created.get("taskId")
        if not task_id:
            raise RuntimeError("AntiCaptcha did not return a taskId")

        deadline = self._clock() + self._timeout
        while self._clock() < deadline:
            self._sleep(self._poll_interval)
            result = self._post("getTaskResult", {"clientKey": self._api_key, "taskId": task_id})
            if result.get("status") == "ready":
                token = ((result.get("solution") or {}).get("token") or "").strip()
                return token or None
        raise TimeoutError(f"AntiCaptcha task {task_id} not ready after {self._timeout:.0f}s")


class TwoCaptchaProvider:
    """
    Turnstile via the 2captcha.com legacy in.php / res.php endpoints.

    Submitting returns a job id; res.php is then polled every `poll_interval_seconds` for at most
    `max_attempts` polls. A failed poll is logged and counted as "not ready".
    """

    name = "2captcha"

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://2captcha.com",
        poll_interval_seconds: float = 7,
        max_attempts: int = 15,
        request_timeout_seconds: float = 30,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._poll_interval = poll_interval_seconds
        self._max_attempts = max_attempts
        self._request_timeout = request_timeout_seconds
        self._session = session or requests.Session()
        self._sleep = sleep

    def solve_turnstile(self, site_key: str, page_url: str) -> Optional[str]:
        resp = self._session.post(
            f"{self._base_url}/in.php",
            data={
                "key": self._api_key,
                "method": "turnstile",
                "sitekey": site_key,
                "pageurl": page_url,
                "json": "1",
            },
            timeout=self._request_timeout,
        )
        resp.raise_for_status()
        submitted = resp.json()
        if submitted.get("status") != 1:
            logger.warning("2Captcha rejected the task: %s", submitted.get("request"))
            return None

        captcha_id = submitted.get("request")
        logger.info("Waiting for 2Captcha solution (id=%s)...", captcha_id)

        for attempt in range(1, self._max_attempts + 1):
            try:
                result_resp = self._session.post(
                    f"{self._base_url}/res.php",
                    data={"key": self._api_key, "action": "get", "id": captcha_id, "json": "1"},
                    timeout=self._request_timeout,
                )
                result_resp.raise_for_status()
                result = result_resp.json()
                if result.get("status") == 1 and result.get("request"):
                    return str(result["request"])
                logger.info("2Captcha attempt %d/%d: %s", attempt, self._max_attempts, result.get("request"))
            except Exception as e:
                logger.warning("2Captcha attempt %d/%d failed: %s", attempt, self._max_attempts, e)

            if attempt < self._max_attempts:
                self._sleep(self._poll_interval)

        logger.warning("2Captcha: timed out waiting for a solution (id=%s)", captcha_id)
        return None
