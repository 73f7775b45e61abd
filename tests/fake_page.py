"""Minimal stand-in for a DrissionPage ChromiumPage."""

from contextlib import contextmanager
from typing import Iterable, Optional

from icp_monitor.source.browser import close_page


class FakeSelect:
    def __init__(self, page, locator):
        self.page = page
        self.locator = locator

    def by_value(self, value):
        if value in self.page.missing_options:
            return False
        self.page.selects[self.locator] = value
        return True


class FakeElement:
    def __init__(self, page, locator, attrs=None):
        self.page = page
        self.locator = locator
        self.attrs = attrs or {}
        self.select = FakeSelect(page, locator)

    def click(self):
        self.page.clicks.append(self.locator)

    def input(self, text, clear=True):
        self.page.inputs[self.locator] = text

    def attr(self, name):
        return self.attrs.get(name)


class FakeWait:
    def __init__(self, page):
        self.page = page

    def load_start(self, timeout=None):
        return True

    def doc_loaded(self, timeout=None):
        return self.page.loads_ok

    def ele_displayed(self, locator, timeout=None):
        return locator not in self.page.missing


class FakePage:
    url = "https://icp.example.test/citar"

    def __init__(
        self,
        slots: int = 1,
        token: Optional[str] = "solved",
        missing: Iterable[str] = (),
        get_ok: bool = True
    ):
        self.slots = slots
        self.token = token
        self.missing = set(missing)
        self.missing_options = set()
        self.get_ok = get_ok
        self.loads_ok = True
        self.visited = []
        self.clicks = []
        self.inputs = {}
        self.selects = {}
        self.scripts = []
        self.eles_calls = 0
        self.quit_called = False
        self.wait = FakeWait(self)

    def get(self, url, timeout=None):
        self.visited.append(url)
        return self.get_ok

    def ele(self, locator, timeout=None):
        if locator in self.missing:
            return None
        return FakeElement(self, locator)

    def eles(self, locator, timeout=None):
        self.eles_calls += 1
        return [FakeElement(self, f"{locator}#{i}") for i in range(self.slots)]

    def run_js(self, script):
        self.scripts.append(script)
        return self.token

    def quit(self):
        self.quit_called = True


def page_factory_for(page: FakePage):
    @contextmanager
    def factory():
        try:
            yield page
        finally:
            close_page(page)

    return factory
