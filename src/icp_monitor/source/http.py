import logging
from typing import Optional

from curl_cffi import requests

from ..errors import FetchError, PageStructureError
from ..extractor import has_marker
from .base import BaseSource

logger = logging.getLogger(__name__)


class HttpSource(BaseSource):
    """Plain HTTP fetch with browser TLS impersonation"""

    DEFAULT_USER_AGENT = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/142.0.0.0 Safari/537.36"
    )

    def __init__(
        self,
        content_selector: str = "body",
        timeout: int = 30,
        proxy_url: Optional[str] = None,
        user_agent: Optional[str] = None,
        impersonate: str = "chrome131"
    ):
        super().__init__(proxy_url)
        self.content_selector = content_selector
        self.timeout = timeout
        self.user_agent = user_agent or self.DEFAULT_USER_AGENT
        self.impersonate = impersonate

    def get_source_name(self) -> str:
        return "HTTP"

    def fetch_page(self, url: str) -> str:
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "es-ES,es;q=0.9,en;q=0.8",
        }
        proxies = {"http": self.proxy_url, "https": self.proxy_url} if self.proxy_url else None

        try:
            response = requests.get(
                url,
                headers=headers,
                timeout=self.timeout,
                proxies=proxies,
                impersonate=self.impersonate
            )
            response.raise_for_status()
        except Exception as e:
            is_timeout = "timed out" in str(e).lower() or "timeout" in str(e).lower()
            if is_timeout:
                raise FetchError(f"request to {url} timed out after {self.timeout}s: {e}") from e
            raise FetchError(f"request to {url} failed: {e}") from e

        html = response.text
        if not has_marker(html, self.content_selector):
            raise PageStructureError(f"content marker {self.content_selector!r} not found on {url}")
        return html
