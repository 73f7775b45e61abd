"""Exception hierarchy for the ICP monitor."""


class MonitorError(Exception):
    """Base exception for the ICP monitor"""


class ConfigError(MonitorError):
    """Configuration missing or invalid"""


class StoreError(MonitorError):
    """Subscriber store could not be read or written"""


class FetchError(MonitorError):
    """Network failure or timeout while loading a page (retryable)"""


class PageStructureError(MonitorError):
    """Expected element or marker absent from the page (not retryable)"""


class CaptchaError(MonitorError):
    """Captcha could not be resolved"""


class CaptchaTimeoutError(CaptchaError):
    """Captcha was not resolved within the allowed time"""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"captcha not resolved within {timeout:.0f}s")
