from ..config import AppConfig, FetchMode
from .base import BaseSource
from .browser import BrowserSource
from .http import HttpSource

__all__ = ["BaseSource", "HttpSource", "BrowserSource", "create_source"]


def create_source(config: AppConfig) -> BaseSource:
    """Factory function to create the page source selected by config"""
    if config.fetch_mode == FetchMode.BROWSER:
        return BrowserSource(
            content_selector=config.selectors.content,
            timeout=config.content_timeout,
            proxy_url=config.proxy_url,
            headless=config.browser_headless,
            use_xvfb=config.browser_use_xvfb
        )
    return HttpSource(
        content_selector=config.selectors.content,
        timeout=config.content_timeout,
        proxy_url=config.proxy_url
    )
