"""
Explicit configuration for the send-verification-email function.
Built once from the environment at process start and passed into each component.
"""
import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

from dotenv import load_dotenv

from email_verification.layers.common.common_utils import (
    DEFAULT_VALIDITY_WINDOW_SECONDS,
    SENDGRID_API_URL,
    ConfigurationError,
    RecordTimestampMode,
)

DEFAULT_SENDER_EMAIL = "no-reply@example.com"
DEFAULT_SENDER_NAME = "Account Verification"
DEFAULT_RECIPIENT_NAME = "Webapp User"
DEFAULT_CONTACT_LINK = "mailto:support@example.com"
DEFAULT_DB_PORT = 5432

DEFAULT_TABLES = {
    RecordTimestampMode.EXPIRY: "email_verifications",
    RecordTimestampMode.SENT_TIME: "email_verification",
}

TRUTHY_VALUES = {"1", "true", "yes", "on"}


@dataclass
class DatabaseConfig:
    host: str = ""
    user: str = ""
    name: str = ""
    password: str = ""
    port: int = DEFAULT_DB_PORT
    password_secret: str = ""
    sslmode: str = "disable"


@dataclass
class MailConfig:
    api_key: str = ""
    api_key_secret: str = ""
    api_url: str = SENDGRID_API_URL
    template_id: str = ""
    verification_url: str = ""
    sender_email: str = DEFAULT_SENDER_EMAIL
    sender_name: str = DEFAULT_SENDER_NAME
    recipient_name: str = DEFAULT_RECIPIENT_NAME
    contact_link: str = DEFAULT_CONTACT_LINK

    @property
    def uses_template(self) -> bool:
        return bool(self.template_id)


@dataclass
class VerificationConfig:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    mail: MailConfig = field(default_factory=MailConfig)
    validity_window: timedelta = timedelta(seconds=DEFAULT_VALIDITY_WINDOW_SECONDS)
    timestamp_mode: RecordTimestampMode = RecordTimestampMode.EXPIRY
    table_name: Optional[str] = None
    log_payload: bool = False

    def __post_init__(self):
        if not self.table_name:
            self.table_name = DEFAULT_TABLES[self.timestamp_mode]


def _env(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def _parse_validity_window(raw: str) -> timedelta:
    try:
        seconds = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"VERIFICATION_TTL_SECONDS must be an integer, got '{raw}'") from e

    if seconds <= 0:
        raise ConfigurationError(f"VERIFICATION_TTL_SECONDS must be positive, got {seconds}")

    return timedelta(seconds=seconds)


def _parse_timestamp_mode(raw: str) -> RecordTimestampMode:
    try:
        return RecordTimestampMode(raw.lower())
    except ValueError as e:
        valid = ", ".join(mode.value for mode in RecordTimestampMode)
        raise ConfigurationError(f"RECORD_TIMESTAMP_MODE must be one of: {valid}, got '{raw}'") from e


def _parse_port(raw: str) -> int:
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"DB_PORT must be an integer, got '{raw}'") from e


def load_config() -> VerificationConfig:
    """
    Read the function configuration from the environment (and a local .env file if present).

    Missing connection details and credentials are left empty here. They are reported by the
    component that needs them, so the failure lands in the right error category.
    """
    load_dotenv()

    database = DatabaseConfig(
        host=_env("DB_HOST"),
        user=_env("DB_USER"),
        name=_env("DB_NAME"),
        password=_env("DB_PASSWORD"),
        port=_parse_port(_env("DB_PORT", str(DEFAULT_DB_PORT))),
        password_secret=_env("DB_PASSWORD_SECRET"),
    )

    mail = MailConfig(
        api_key=_env("SENDGRID_API_KEY"),
        api_key_secret=_env("SENDGRID_API_KEY_SECRET"),
        api_url=_env("SENDGRID_API_URL", SENDGRID_API_URL),
        template_id=_env("TEMPLATE_ID"),
        verification_url=_env("VERIFICATION_URL"),
        sender_email=_env("SENDER_EMAIL", DEFAULT_SENDER_EMAIL),
        sender_name=_env("SENDER_NAME", DEFAULT_SENDER_NAME),
        recipient_name=_env("RECIPIENT_NAME", DEFAULT_RECIPIENT_NAME),
        contact_link=_env("CONTACT_LINK", DEFAULT_CONTACT_LINK),
    )

    return VerificationConfig(
        database=database,
        mail=mail,
        validity_window=_parse_validity_window(
            _env("VERIFICATION_TTL_SECONDS", str(DEFAULT_VALIDITY_WINDOW_SECONDS))
        ),
        timestamp_mode=_parse_timestamp_mode(
            _env("RECORD_TIMESTAMP_MODE", RecordTimestampMode.EXPIRY.value)
        ),
        table_name=_env("VERIFICATION_TABLE") or None,
        log_payload=_env("LOG_DECODED_PAYLOAD").lower() in TRUTHY_VALUES,
    )
