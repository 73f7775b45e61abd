import logging
import os
from contextlib import contextmanager
from typing import Iterator, Optional

from ..errors import FetchError
from .base import BaseSource

logger = logging.getLogger(__name__)


def build_options(
    headless: bool = True,
    proxy_url: Optional[str] = None,
    user_agent: Optional[str] = None
):
    """Chromium options shared by page fetching and booking"""
    from DrissionPage import ChromiumOptions

    options = ChromiumOptions()
    # Each run gets its own debugging port so overlapping browsers do not collide
    options.auto_port()
    options.headless(headless)

    options.set_argument("--no-sandbox")
    options.set_argument("--disable-dev-shm-usage")
    options.set_argument("--disable-gpu")
    options.set_argument("--disable-blink-features=AutomationControlled")
    options.set_argument("--window-size=1280,800")

    if user_agent:
        options.set_user_agent(user_agent)
    if proxy_url:
        options.set_proxy(proxy_url)
    return options


def close_page(page) -> None:
    """Quit the browser, falling back to closing the tab"""
    try:
        page.quit()
        return
    except Exception as e:
        logger.debug(f"page.quit() failed: {e}")
    try:
        page.close()
    except Exception as e:
        logger.warning(f"Could not close browser: {e}")


@contextmanager
def open_browser(
    headless: bool = True,
    use_xvfb: bool = True,
    proxy_url: Optional[str] = None,
    user_agent: Optional[str] = None
) -> Iterator:
    """Start Chromium (inside Xvfb when needed) and always release it"""
    from DrissionPage import ChromiumPage

    display = None
    if not headless and (use_xvfb or not os.environ.get("DISPLAY")):
        from pyvirtualdisplay import Display
        display = Display(visible=0, size=(1280, 800))
        display.start()
        logger.info("🖥️ Started Xvfb virtual display")

    page = None
    try:
        page = ChromiumPage(build_options(headless, proxy_url, user_agent))
        yield page
    finally:
        if page is not None:
            close_page(page)
        if display:
            display.stop()


class BrowserSource(BaseSource):
    """Render the page in Chromium through DrissionPage"""

    def __init__(
        self,
        content_selector: str = "body",
        timeout: int = 30,
        proxy_url: Optional[str] = None,
        headless: bool = True,
        use_xvfb: bool = True,
        user_agent: Optional[str] = None
    ):
        super().__init__(proxy_url)
        self.content_selector = content_selector
        self.timeout = timeout
        self.headless = headless
        self.use_xvfb = use_xvfb
        self.user_agent = user_agent

    def get_source_name(self) -> str:
        return "Browser (DrissionPage)"

    def _open(self):
        return open_browser(
            headless=self.headless,
            use_xvfb=self.use_xvfb,
            proxy_url=self.proxy_url,
            user_agent=self.user_agent
        )

    def fetch_page(self, url: str) -> str:
        try:
            with self._open() as page:
                if not page.get(url, timeout=self.timeout):
                    raise FetchError(f"navigation to {url} failed")
                if not page.wait.ele_displayed(f"css:{self.content_selector}", timeout=self.timeout):
                    # The page may still be loading or blocked; treated like a network failure
                    raise FetchError(
                        f"content marker {self.content_selector!r} not shown within {self.timeout}s"
                    )
                return page.html
        except FetchError:
            raise
        except Exception as e:
            raise FetchError(f"browser fetch of {url} failed: {e}") from e
