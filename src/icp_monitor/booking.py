"""Form-filling driver for the ICP appointment form.

The run is a fixed sequence of pages: province, procedure, captcha,
personal data, slot. Every step submits and then waits for the element that
marks the next page; anything missing aborts the run. The browser is always
released when the run ends.
"""
import logging
import time
from typing import Callable, ContextManager, Optional

from .captcha import CaptchaResolver, ManualCaptchaResolver, TwoCaptchaResolver
from .config import AppConfig, BookingConfig
from .errors import FetchError, PageStructureError
from .models import BookingResult, BookingState
from .retry import retry_call
from .source.browser import open_browser

logger = logging.getLogger(__name__)


def create_captcha_resolver(booking: BookingConfig) -> CaptchaResolver:
    """2captcha when automation is enabled, otherwise wait for a human"""
    if booking.captcha_auto:
        return TwoCaptchaResolver(
            booking.captcha_api_key,
            widget_selector=booking.selectors.captcha_widget,
            timeout=booking.captcha_manual_timeout
        )
    return ManualCaptchaResolver(timeout=booking.captcha_manual_timeout)


class BookingDriver:
    """Drives one booking attempt from the entry page to a confirmed slot"""

    def __init__(
        self,
        config: AppConfig,
        captcha_resolver: Optional[CaptchaResolver] = None,
        page_factory: Optional[Callable[[], ContextManager]] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.config = config
        self.booking = config.booking
        self.sel = config.booking.selectors
        self.captcha_resolver = captcha_resolver
        self.page_factory = page_factory or self._open_browser
        self._sleep = sleep
        self.state = BookingState.START

    def _open_browser(self) -> ContextManager:
        # A person has to see the page to solve the captcha by hand
        headless = self.config.browser_headless and self.booking.captcha_auto
        return open_browser(
            headless=headless,
            use_xvfb=self.config.browser_use_xvfb and headless,
            proxy_url=self.config.proxy_url
        )

    def run(self) -> BookingResult:
        """Run the whole form; ConfigError is raised before any browser starts"""
        self.config.require_booking()
        if self.captcha_resolver is None:
            self.captcha_resolver = create_captcha_resolver(self.booking)

        self.state = BookingState.START
        logger.info("📝 Booking run started")
        try:
            with self.page_factory() as page:
                self._open_start_page(page)
                self._select_province(page)
                self._select_procedure(page)
                self._resolve_captcha(page)
                self._fill_form(page)
                if not self._select_slot(page):
                    self.state = BookingState.NO_SLOTS
                    logger.info("📭 No available slots")
                    return BookingResult(self.state, "no slots available")
                self._confirm(page)
        except Exception as e:
            failed_at = self.state
            self.state = BookingState.FAILED
            logger.error(f"❌ Booking aborted after '{failed_at.value}': {e}")
            return BookingResult(self.state, f"aborted after {failed_at.value}: {e}", e)

        logger.info("🎉 Appointment booked")
        return BookingResult(self.state, "appointment booked")

    # --- steps -------------------------------------------------------------

    def _open_start_page(self, page) -> None:
        retry_call(
            self._navigate,
            page,
            self.booking.start_url,
            attempts=self.config.fetch_retries,
            delay=self.config.retry_delay,
            label="open booking page",
            sleep=self._sleep
        )
        self._wait_for(page, self.sel.province_select)

    def _select_province(self, page) -> None:
        self._select(page, self.sel.province_select, self.booking.province_code)
        self._submit(page, self.sel.province_submit, self.sel.procedure_select)
        self._advance(BookingState.PROVINCE_SELECTED)

    def _select_procedure(self, page) -> None:
        self._select(page, self.sel.procedure_select, self.booking.operation_code)
        self._submit(page, self.sel.procedure_submit, self.sel.enter_button)
        self._submit(page, self.sel.enter_button, self.sel.doc_input)
        self._advance(BookingState.PROCEDURE_SELECTED)

    def _resolve_captcha(self, page) -> None:
        self.captcha_resolver.resolve(page)
        self._advance(BookingState.CAPTCHA_RESOLVED)

    def _fill_form(self, page) -> None:
        radio = page.ele(self.sel.doc_nie_radio, timeout=2)
        if radio:
            radio.click()
        self._fill(page, self.sel.doc_input, self.booking.doc_value.upper())
        self._fill(page, self.sel.name_input, self.booking.full_name.upper())
        self._fill(page, self.sel.birth_year_input, self.booking.birth_year)
        self._select(page, self.sel.country_select, self.booking.country)
        self._submit(page, self.sel.data_submit, self.sel.request_button)

        self._submit(page, self.sel.request_button, self.sel.phone_input)
        self._fill(page, self.sel.phone_input, self.booking.phone)
        self._fill(page, self.sel.email_input, self.booking.email)
        self._fill(page, self.sel.email_confirm_input, self.booking.email)
        self._click(page, self.sel.contact_submit)
        self._wait_loaded(page)
        self._advance(BookingState.FORM_FILLED)

    def _select_slot(self, page) -> bool:
        """Click the first offered slot; False when there is none"""
        slots = page.eles(self.sel.slot, timeout=self.booking.step_timeout)
        if not slots:
            return False
        logger.info(f"📅 {len(slots)} slot(s) offered, taking the first one")
        slots[0].click()
        self._submit(page, self.sel.slot_submit, self.sel.confirm_checkbox)
        self._advance(BookingState.SLOT_SELECTED)
        return True

    def _confirm(self, page) -> None:
        self._click(page, self.sel.confirm_checkbox)
        self._click(page, self.sel.confirm_submit)
        self._wait_loaded(page)
        self._advance(BookingState.DONE)

    # --- page helpers ------------------------------------------------------

    def _advance(self, state: BookingState) -> None:
        self.state = state
        logger.info(f"➡️ Booking step: {state.value}")

    def _navigate(self, page, url: str) -> None:
        if not page.get(url, timeout=self.booking.step_timeout):
            raise FetchError(f"navigation to {url} failed")

    def _ele(self, page, locator: str):
        ele = page.ele(locator, timeout=self.booking.step_timeout)
        if not ele:
            raise PageStructureError(f"element {locator!r} not found")
        return ele

    def _click(self, page, locator: str) -> None:
        self._ele(page, locator).click()

    def _fill(self, page, locator: str, text: str) -> None:
        self._ele(page, locator).input(text, clear=True)

    def _select(self, page, locator: str, value: str) -> None:
        if not self._ele(page, locator).select.by_value(value):
            raise PageStructureError(f"option {value!r} not available in {locator!r}")

    def _wait_loaded(self, page) -> None:
        page.wait.load_start(timeout=self.booking.step_timeout)
        if not page.wait.doc_loaded(timeout=self.booking.step_timeout):
            raise FetchError(f"page did not finish loading within {self.booking.step_timeout}s")

    def _wait_for(self, page, locator: str) -> None:
        if not page.wait.ele_displayed(locator, timeout=self.booking.step_timeout):
            raise PageStructureError(f"expected element {locator!r} did not appear")

    def _submit(self, page, locator: str, next_locator: str) -> None:
        """Click a submit control, then wait for the next page's marker"""
        self._click(page, locator)
        self._wait_loaded(page)
        self._wait_for(page, next_locator)
