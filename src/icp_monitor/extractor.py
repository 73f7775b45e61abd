from typing import List

from bs4 import BeautifulSoup

from .config import Selectors
from .models import AvailabilityEntry

MESSAGE_HEADER = "Доступны новые встречи:\n\n"


def _child_text(block, selector: str) -> str:
    child = block.select_one(selector)
    return child.get_text(strip=True) if child else ""


def extract_availability(html: str, selectors: Selectors, marker: str) -> List[AvailabilityEntry]:
    """Collect availability blocks whose date text contains the marker"""
    soup = BeautifulSoup(html, "html.parser")
    entries = []

    for block in soup.select(selectors.block):
        dates = _child_text(block, selectors.dates)
        if marker not in dates:
            continue
        entries.append(AvailabilityEntry(
            city=_child_text(block, selectors.city),
            building=_child_text(block, selectors.building),
            dates=dates
        ))

    return entries


def has_marker(html: str, css_selector: str) -> bool:
    """Check whether the page contains the element marking loaded content"""
    soup = BeautifulSoup(html, "html.parser")
    return soup.select_one(css_selector) is not None


def format_message(entries: List[AvailabilityEntry]) -> str:
    """Build the notification text sent to subscribers"""
    body = "".join(
        f"Город: {entry.city}\n"
        f"Здание: {entry.building}\n"
        f"Доступные даты: {entry.dates}\n\n"
        for entry in entries
    )
    return MESSAGE_HEADER + body
