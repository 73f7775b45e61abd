"""Tests for the form-filling driver."""

from unittest.mock import MagicMock

import pytest

from icp_monitor.booking import BookingDriver, create_captcha_resolver
from icp_monitor.captcha import ManualCaptchaResolver, TwoCaptchaResolver
from icp_monitor.config import BookingConfig, BookingSelectors
from icp_monitor.errors import CaptchaTimeoutError, ConfigError, FetchError, PageStructureError
from icp_monitor.models import BookingState

from conftest import make_config
from fake_page import FakePage, page_factory_for

SEL = BookingSelectors()


def booking_config(**overrides):
    values = dict(
        province_code="28",
        operation_code="4010",
        doc_value="y1234567x",
        full_name="Ivan Petrov",
        birth_year="1990",
        country="149",
        phone="600000000",
        email="ivan@example.es",
        step_timeout=1,
    )
    values.update(overrides)
    return make_config(booking=BookingConfig(**values), fetch_retries=2)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds


def test_full_run_books_first_slot():
    page = FakePage(slots=3)
    driver = BookingDriver(
        booking_config(),
        captcha_resolver=ManualCaptchaResolver(timeout=5),
        page_factory=page_factory_for(page)
    )

    result = driver.run()

    assert result.success
    assert result.state == BookingState.DONE
    assert page.visited == ["https://icp.administracionelectronica.gob.es/icpplus/index.html"]
    assert page.selects == {
        SEL.province_select: "28",
        SEL.procedure_select: "4010",
        SEL.country_select: "149",
    }
    assert page.inputs[SEL.doc_input] == "Y1234567X"
    assert page.inputs[SEL.name_input] == "IVAN PETROV"
    assert page.inputs[SEL.birth_year_input] == "1990"
    assert page.inputs[SEL.email_confirm_input] == "ivan@example.es"
    assert f"{SEL.slot}#0" in page.clicks
    assert f"{SEL.slot}#1" not in page.clicks
    assert page.clicks[-1] == SEL.confirm_submit
    assert page.quit_called


def test_no_slots_stops_before_confirming():
    page = FakePage(slots=0)
    driver = BookingDriver(
        booking_config(),
        captcha_resolver=ManualCaptchaResolver(timeout=5),
        page_factory=page_factory_for(page)
    )

    result = driver.run()

    assert result.state == BookingState.NO_SLOTS
    assert SEL.confirm_submit not in page.clicks
    assert page.quit_called


def test_captcha_timeout_aborts_and_releases_browser():
    page = FakePage(token="")
    clock = FakeClock()
    resolver = ManualCaptchaResolver(timeout=300, poll_interval=2, clock=clock, sleep=clock.sleep)
    driver = BookingDriver(booking_config(), captcha_resolver=resolver, page_factory=page_factory_for(page))

    result = driver.run()

    assert result.state == BookingState.FAILED
    assert isinstance(result.error, CaptchaTimeoutError)
    assert "procedure_selected" in result.message
    assert page.eles_calls == 0
    assert SEL.doc_input not in page.inputs
    assert page.quit_called
    assert clock.now >= 300


def test_missing_config_fails_before_browser():
    factory = MagicMock()
    config = make_config(booking=BookingConfig(province_code="28"))

    with pytest.raises(ConfigError, match="doc_value"):
        BookingDriver(config, page_factory=factory).run()
    factory.assert_not_called()


def test_missing_element_aborts():
    page = FakePage(missing={SEL.enter_button})
    driver = BookingDriver(
        booking_config(),
        captcha_resolver=ManualCaptchaResolver(timeout=5),
        page_factory=page_factory_for(page)
    )

    result = driver.run()

    assert result.state == BookingState.FAILED
    assert isinstance(result.error, PageStructureError)
    assert "province_selected" in result.message
    assert page.quit_called


def test_unknown_option_aborts():
    page = FakePage()
    page.missing_options.add("4010")
    driver = BookingDriver(
        booking_config(),
        captcha_resolver=ManualCaptchaResolver(timeout=5),
        page_factory=page_factory_for(page)
    )

    result = driver.run()

    assert isinstance(result.error, PageStructureError)
    assert driver.state == BookingState.FAILED


def test_navigation_retried_then_fails():
    page = FakePage(get_ok=False)
    sleep = MagicMock()
    driver = BookingDriver(
        booking_config(),
        captcha_resolver=ManualCaptchaResolver(timeout=5),
        page_factory=page_factory_for(page),
        sleep=sleep
    )

    result = driver.run()

    assert isinstance(result.error, FetchError)
    assert len(page.visited) == 2
    sleep.assert_called_once()
    assert page.quit_called


def test_page_load_timeout_is_fetch_error():
    page = FakePage()
    page.loads_ok = False
    driver = BookingDriver(
        booking_config(),
        captcha_resolver=ManualCaptchaResolver(timeout=5),
        page_factory=page_factory_for(page)
    )

    result = driver.run()

    assert isinstance(result.error, FetchError)
    assert page.quit_called


def test_create_captcha_resolver():
    manual = create_captcha_resolver(BookingConfig(captcha_manual_timeout=120))
    assert isinstance(manual, ManualCaptchaResolver)
    assert manual.timeout == 120

    auto = create_captcha_resolver(BookingConfig(captcha_auto=True, captcha_api_key="k"))
    assert isinstance(auto, TwoCaptchaResolver)
