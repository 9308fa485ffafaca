from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

SEND_TIMEOUT_SECONDS = 30
DEFAULT_VALIDITY_WINDOW_SECONDS = 120
SENDGRID_API_URL = "https://api.sendgrid.com/v3/mail/send"


class RecordTimestampMode(str, Enum):
    EXPIRY = "expiry"
    SENT_TIME = "sent_time"


class PersistPhase(str, Enum):
    CONNECT = "connect"
    INSERT = "insert"


@dataclass
class VerificationRequest:
    email: str
    token: str


@dataclass
class VerificationRecord:
    email: str
    token: str
    issued_at: datetime
    expiry: datetime


@dataclass
class DispatchResult:
    status_code: int
    body: str


@dataclass
class VerificationException(Exception):
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass
class ConfigurationError(VerificationException):
    pass


@dataclass
class DecodeError(VerificationException):
    pass


@dataclass
class DispatchError(VerificationException):
    status_code: Optional[int] = None


@dataclass
class PersistError(VerificationException):
    phase: PersistPhase = PersistPhase.INSERT
    record: Optional[VerificationRecord] = None
    # set once the verification email has already been accepted by the provider
    email_sent: bool = False
