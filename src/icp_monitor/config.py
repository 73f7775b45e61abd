import json
import os
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from dotenv import load_dotenv
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigError

ENV_PREFIX = "ICP_"
BOOKING_ENV_PREFIX = "ICP_BOOKING_"

# Legacy upper-case keys, still accepted in config.json and the environment
LEGACY_ENV_KEYS = {
    "TELEGRAM_BOT_TOKEN": "bot_token",
    "TARGET_URL": "target_url",
}


class FetchMode(str, Enum):
    """How the target page is retrieved"""
    HTTP = "http"
    BROWSER = "browser"


class Selectors(BaseModel):
    """CSS selectors of the availability page"""
    model_config = ConfigDict(frozen=True)

    block: str = Field(default=".meeting-availability", description="One availability block")
    city: str = Field(default=".city-name", description="City text inside a block")
    building: str = Field(default=".building-name", description="Building text inside a block")
    dates: str = Field(default=".available-dates", description="Date text inside a block")
    content: str = Field(
        default="body",
        description="Element that must be present before the page counts as loaded"
    )


class BookingSelectors(BaseModel):
    """Element locators of the booking form, one group per page"""
    model_config = ConfigDict(frozen=True)

    province_select: str = "#form"
    province_submit: str = "#btnAceptar"
    procedure_select: str = "#tramiteGrupo[0]"
    procedure_submit: str = "#btnAceptar"
    enter_button: str = "#btnEntrar"
    captcha_widget: str = ".g-recaptcha"
    doc_nie_radio: str = "#rdbTipoDocNie"
    doc_input: str = "#txtIdCitado"
    name_input: str = "#txtDesCitado"
    birth_year_input: str = "#txtAnnoCitado"
    country_select: str = "#txtPaisNac"
    data_submit: str = "#btnEnviar"
    request_button: str = "#btnEnviar"
    phone_input: str = "#txtTelefonoCitado"
    email_input: str = "#emailUNO"
    email_confirm_input: str = "#emailDOS"
    contact_submit: str = "#btnSiguiente"
    slot: str = "css:input[type=radio][id^=cita]"
    slot_submit: str = "#btnSiguiente"
    confirm_checkbox: str = "#chkTotal"
    confirm_submit: str = "#btnConfirmar"


class BookingConfig(BaseModel):
    """Applicant data and settings for the form-filling run"""
    model_config = ConfigDict(frozen=True)

    start_url: str = Field(
        default="https://icp.administracionelectronica.gob.es/icpplus/index.html",
        description="Entry page of the booking form"
    )
    province_code: str = Field(default="", description="Value of the province option")
    operation_code: str = Field(default="", description="Value of the procedure option")
    doc_value: str = Field(default="", description="NIE / passport number")
    full_name: str = Field(default="", description="Applicant full name")
    birth_year: str = Field(default="", description="Four digit year of birth")
    country: str = Field(default="", description="Value of the nationality option")
    phone: str = Field(default="", description="Contact phone")
    email: str = Field(default="", description="Contact email")

    captcha_auto: bool = Field(default=False, description="Solve captcha through 2captcha")
    captcha_api_key: Optional[str] = Field(default=None, description="2captcha API key")
    captcha_manual_timeout: int = Field(default=300, description="Seconds to wait for a human")
    step_timeout: int = Field(default=30, description="Seconds to wait for each page")

    selectors: BookingSelectors = Field(default_factory=BookingSelectors)

    REQUIRED_FIELDS: ClassVar[Tuple[str, ...]] = (
        "province_code", "operation_code", "doc_value", "full_name",
        "birth_year", "country", "phone", "email",
    )

    def missing_fields(self) -> List[str]:
        """Names of required fields that are empty"""
        missing = [name for name in self.REQUIRED_FIELDS if not str(getattr(self, name)).strip()]
        if self.captcha_auto and not (self.captcha_api_key or "").strip():
            missing.append("captcha_api_key")
        return missing


class AppConfig(BaseModel):
    """Application configuration"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    bot_token: str = Field(
        default="",
        validation_alias=AliasChoices("bot_token", "TELEGRAM_BOT_TOKEN"),
        description="Telegram Bot Token"
    )
    target_url: str = Field(
        default="",
        validation_alias=AliasChoices("target_url", "TARGET_URL"),
        description="Availability page to poll"
    )
    proxy_url: Optional[str] = Field(default=None, description="HTTP(S) proxy for all requests")

    fetch_mode: FetchMode = Field(default=FetchMode.HTTP, description="http or browser")
    fetch_interval: int = Field(default=60, description="Poll interval in seconds")
    fetch_retries: int = Field(default=3, description="Fetch attempts per cycle")
    retry_delay: float = Field(default=10, description="Seconds between fetch attempts")
    content_timeout: int = Field(default=30, description="Seconds to wait for page content")
    probe_enabled: bool = Field(default=True, description="Check reachability before fetching")
    probe_timeout: float = Field(default=5, description="Reachability check timeout")

    available_marker: str = Field(default="доступны", description="Text marking an available slot")
    dedupe_notifications: bool = Field(
        default=True,
        description="Do not repeat a notification for an entry already sent"
    )

    admin_chat_id: Optional[int] = Field(default=None, description="Chat receiving alerts")
    alert_threshold: int = Field(default=5, description="Failed cycles before alerting")

    browser_headless: bool = Field(default=True, description="Run Chromium headless")
    browser_use_xvfb: bool = Field(default=True, description="Use Xvfb when not headless")

    subscribers_file: str = Field(default="users.json", description="Subscriber JSON file")

    selectors: Selectors = Field(default_factory=Selectors)
    booking: BookingConfig = Field(default_factory=BookingConfig)

    def missing_for_monitoring(self) -> List[str]:
        """Required settings for the polling bot that are empty"""
        return [name for name in ("bot_token", "target_url") if not getattr(self, name).strip()]

    def require_monitoring(self) -> None:
        missing = self.missing_for_monitoring()
        if missing:
            raise ConfigError(f"missing required settings: {', '.join(missing)}")

    def require_booking(self) -> None:
        missing = self.booking.missing_fields()
        if missing:
            raise ConfigError(f"missing required booking settings: {', '.join(missing)}")


class ConfigManager:
    """Manages application configuration

    Values come from config.json, then .env, then ICP_* environment
    variables; later sources win.
    """

    CONFIG_FILE = "config.json"
    ENV_FILE = ".env"
    LOG_DIR = "logs"

    def __init__(self, config_dir: Optional[Path] = None, environ: Optional[Dict[str, str]] = None):
        # Default to current working directory
        self.config_dir = Path(config_dir) if config_dir else Path.cwd()
        self.config_path = self.config_dir / self.CONFIG_FILE
        self.env_path = self.config_dir / self.ENV_FILE
        self._environ = environ

    def ensure_config_dir(self) -> None:
        """Ensure config directory exists"""
        self.config_dir.mkdir(parents=True, exist_ok=True)

    def load_raw(self) -> Optional[dict]:
        """Load raw configuration as dict"""
        if not self.config_path.exists():
            return None
        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigError(f"cannot read {self.config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{self.config_path} must contain a JSON object")
        return data

    def load(self) -> AppConfig:
        """Load configuration from file and environment"""
        data = self.load_raw() or {}
        data = self._merge_env(data, self._get_environ())
        try:
            return AppConfig.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"invalid configuration: {e}") from e

    def _get_environ(self) -> Dict[str, str]:
        if self._environ is not None:
            return self._environ
        if self.env_path.exists():
            load_dotenv(self.env_path, override=False)
        return dict(os.environ)

    @staticmethod
    def _merge_env(data: Dict[str, Any], environ: Dict[str, str]) -> Dict[str, Any]:
        merged = dict(data)
        # The file may use the legacy upper-case keys; normalise them first
        for legacy, field in LEGACY_ENV_KEYS.items():
            if legacy in merged:
                merged.setdefault(field, merged.pop(legacy))

        for legacy, field in LEGACY_ENV_KEYS.items():
            if environ.get(legacy):
                merged[field] = environ[legacy]

        nested = ("selectors", "booking")
        for field in AppConfig.model_fields:
            if field in nested:
                continue
            value = environ.get(f"{ENV_PREFIX}{field.upper()}")
            if value is not None:
                merged[field] = value

        booking = dict(merged.get("booking") or {})
        for field in BookingConfig.model_fields:
            if field == "selectors":
                continue
            value = environ.get(f"{BOOKING_ENV_PREFIX}{field.upper()}")
            if value is not None:
                booking[field] = value
        if booking:
            merged["booking"] = booking
        return merged

    def save(self, config: AppConfig) -> None:
        """Save configuration to file"""
        self.ensure_config_dir()
        with open(self.config_path, "w", encoding="utf-8") as f:
            # Only save non-None fields
            data = config.model_dump(mode="json", exclude_none=True)
            json.dump(data, f, indent=2, ensure_ascii=False)

    def exists(self) -> bool:
        """Check if configuration file exists"""
        return self.config_path.exists()

    def subscribers_path(self, config: AppConfig) -> Path:
        """Subscriber file, relative paths resolved against the config dir"""
        path = Path(config.subscribers_file)
        if not path.is_absolute():
            path = self.config_dir / path
        return path

    def log_dir(self) -> Path:
        return self.config_dir / self.LOG_DIR
