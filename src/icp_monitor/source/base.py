import logging
from abc import ABC, abstractmethod
from typing import Optional

import requests

logger = logging.getLogger(__name__)


class BaseSource(ABC):
    """Abstract page source: turns a URL into an HTML document"""

    def __init__(self, proxy_url: Optional[str] = None):
        self.proxy_url = proxy_url

    @abstractmethod
    def fetch_page(self, url: str) -> str:
        """Fetch the page and return its HTML

        Raises FetchError on network failures and timeouts, and
        PageStructureError when the page loads without the expected content.
        """
        pass

    @abstractmethod
    def get_source_name(self) -> str:
        """Return the name of this source for logging"""
        pass

    def probe(self, url: str, timeout: float = 5) -> bool:
        """Quick reachability check, never raises"""
        proxies = {"http": self.proxy_url, "https": self.proxy_url} if self.proxy_url else None
        try:
            resp = requests.head(url, timeout=timeout, allow_redirects=True, proxies=proxies)
            return resp.status_code < 500
        except requests.RequestException as e:
            logger.debug(f"Probe {url} failed: {e}")
            return False

    def close(self) -> None:
        """Release resources held between fetches"""
        pass
