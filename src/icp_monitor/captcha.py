"""Captcha resolution for the booking form.

Two strategies share one interface: ``resolve(page)`` returns once the
reCAPTCHA response field is filled, or raises ``CaptchaError``.
"""
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

from .errors import CaptchaError, CaptchaTimeoutError

logger = logging.getLogger(__name__)

# Returns null when the page has no reCAPTCHA at all
TOKEN_JS = (
    "var el = document.getElementById('g-recaptcha-response');"
    "return el ? el.value : null;"
)


def read_token(page) -> Optional[str]:
    """Current reCAPTCHA response, '' if unsolved, None if there is no captcha"""
    return page.run_js(TOKEN_JS)


class CaptchaResolver(ABC):
    """Satisfies the human-verification step of the booking form"""

    @abstractmethod
    def resolve(self, page) -> None:
        pass


class ManualCaptchaResolver(CaptchaResolver):
    """Waits for a person to solve the captcha in the visible browser"""

    def __init__(
        self,
        timeout: float = 300,
        poll_interval: float = 2,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep

    def resolve(self, page) -> None:
        token = read_token(page)
        if token is None:
            logger.info("No captcha on the page")
            return

        logger.info(f"🧩 Waiting up to {self.timeout:.0f}s for the captcha to be solved manually...")
        deadline = self._clock() + self.timeout
        while not token:
            if self._clock() >= deadline:
                raise CaptchaTimeoutError(self.timeout)
            self._sleep(self.poll_interval)
            token = read_token(page)
        logger.info("✅ Captcha solved manually")


class TwoCaptchaResolver(CaptchaResolver):
    """Solves reCAPTCHA v2 through the 2captcha service"""

    def __init__(self, api_key: str, widget_selector: str = ".g-recaptcha", timeout: int = 300):
        if not api_key:
            raise ValueError("2captcha API key is required")
        self._api_key = api_key
        self.widget_selector = widget_selector
        self.timeout = timeout

    def __repr__(self) -> str:
        return "TwoCaptchaResolver(api_key='***')"

    def _solver(self):
        from twocaptcha import TwoCaptcha

        return TwoCaptcha(self._api_key, recaptchaTimeout=self.timeout)

    def resolve(self, page) -> None:
        if read_token(page) is None:
            logger.info("No captcha on the page")
            return

        widget = page.ele(f"css:{self.widget_selector}", timeout=5)
        site_key = widget.attr("data-sitekey") if widget else None
        if not site_key:
            raise CaptchaError(f"reCAPTCHA site key not found ({self.widget_selector})")

        logger.info("🧩 Solving reCAPTCHA with 2captcha...")
        try:
            result = self._solver().recaptcha(sitekey=site_key, url=page.url)
        except Exception as e:
            if "timeout" in str(e).lower():
                raise CaptchaTimeoutError(self.timeout) from e
            raise CaptchaError(f"2captcha error: {e}") from e

        if not (isinstance(result, dict) and result.get("code")):
            raise CaptchaError(f"2captcha returned unexpected result: {result}")

        page.run_js(
            "document.getElementById('g-recaptcha-response').value = " + json.dumps(result["code"]) + ";"
        )
        logger.info("✅ 2captcha solved the captcha")
