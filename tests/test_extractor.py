"""Tests for availability extraction and message formatting."""

from icp_monitor.config import Selectors
from icp_monitor.extractor import extract_availability, format_message, has_marker
from icp_monitor.models import AvailabilityEntry

from conftest import AVAILABLE_HTML, EMPTY_HTML


def test_extracts_only_marked_blocks():
    entries = extract_availability(AVAILABLE_HTML, Selectors(), "доступны")
    assert entries == [AvailabilityEntry(city="Madrid", building="B1", dates="доступны 5 мая")]


def test_no_marked_blocks():
    assert extract_availability(EMPTY_HTML, Selectors(), "доступны") == []


def test_missing_children_give_empty_text():
    html = '<div class="meeting-availability"><p class="available-dates">доступны</p></div>'
    entries = extract_availability(html, Selectors(), "доступны")
    assert entries == [AvailabilityEntry(city="", building="", dates="доступны")]


def test_custom_selectors_and_marker():
    html = """
    <table>
      <tr class="slot"><td class="c">Sevilla</td><td class="b">Of. 3</td><td class="d">Disponible 2 junio</td></tr>
    </table>
    """
    selectors = Selectors(block="tr.slot", city=".c", building=".b", dates=".d")
    entries = extract_availability(html, selectors, "Disponible")
    assert entries[0].city == "Sevilla"
    assert entries[0].building == "Of. 3"


def test_format_message():
    message = format_message([
        AvailabilityEntry("Madrid", "B1", "доступны 5 мая"),
        AvailabilityEntry("Toledo", "A", "доступны 7 мая"),
    ])
    assert message == (
        "Доступны новые встречи:\n\n"
        "Город: Madrid\nЗдание: B1\nДоступные даты: доступны 5 мая\n\n"
        "Город: Toledo\nЗдание: A\nДоступные даты: доступны 7 мая\n\n"
    )


def test_has_marker():
    assert has_marker(AVAILABLE_HTML, ".meeting-availability")
    assert not has_marker(AVAILABLE_HTML, "#calendar")


def test_fingerprint_is_stable_and_distinct():
    a = AvailabilityEntry("Madrid", "B1", "доступны 5 мая")
    assert a.fingerprint() == AvailabilityEntry("Madrid", "B1", "доступны 5 мая").fingerprint()
    assert a.fingerprint() != AvailabilityEntry("Madrid", "B1", "доступны 6 мая").fingerprint()
