"""
Runs one verification attempt: decode the message, send the email, then record the token.

States move strictly forward, DECODING -> DISPATCHING -> PERSISTING -> DONE, and any of the
first three can end in FAILED. A record is only written after the provider has accepted the
email. If the write fails the email is already out, so the PersistError is flagged with
email_sent and carries the unsaved record for replay. Nothing is retried here; redelivery is
left to the trigger infrastructure.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, UTC
from enum import Enum
from typing import Callable, Optional, Union

from email_verification.functions.send_verification_email.event_decoder import EventDecoder
from email_verification.layers.common.common_utils import (
    DecodeError,
    DispatchError,
    DispatchResult,
    PersistError,
    VerificationException,
    VerificationRecord,
    VerificationRequest,
)
from email_verification.layers.common.db_utils import RecordStore
from email_verification.layers.common.logging_utils import CorrelationLogger
from email_verification.layers.common.mail_utils import EmailDispatcher


class InvocationState(str, Enum):
    DECODING = "decoding"
    DISPATCHING = "dispatching"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class VerificationOutcome:
    request: VerificationRequest
    record: VerificationRecord
    dispatch: DispatchResult


def utc_now() -> datetime:
    return datetime.now(UTC)


class VerificationOrchestrator:
    def __init__(
        self,
        decoder: EventDecoder,
        dispatcher: EmailDispatcher,
        store: RecordStore,
        validity_window: timedelta,
        log: CorrelationLogger,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.decoder = decoder
        self.dispatcher = dispatcher
        self.store = store
        self.validity_window = validity_window
        self.log = log
        self.clock = clock or utc_now
        self.state = InvocationState.DECODING
        self.failed_state: Optional[InvocationState] = None
        self.failure: Optional[VerificationException] = None
        self.record: Optional[VerificationRecord] = None

    def run(self, payload: Optional[Union[bytes, str]]) -> VerificationOutcome:
        self.state = InvocationState.DECODING
        self.failed_state = None
        self.failure = None
        self.record = None

        try:
            request = self.decoder.decode(payload)

            self._advance(InvocationState.DISPATCHING)
            dispatch = self.dispatcher.send(request.email, request.token)

            # the email is out from here on, any failure is sent-but-unrecorded
            self._advance(InvocationState.PERSISTING)
            record = self.record = self.build_record(request, self.clock())
            try:
                self.store.insert(record)
            except PersistError as e:
                e.email_sent = True
                if e.record is None:
                    e.record = record
                raise

        except VerificationException as e:
            self._fail(e)
            raise
        except Exception as e:
            error = self._wrap_unexpected(e)
            self._fail(error)
            raise error from e

        self._advance(InvocationState.DONE)
        return VerificationOutcome(request=request, record=record, dispatch=dispatch)

    def build_record(self, request: VerificationRequest, issued_at: datetime) -> VerificationRecord:
        return VerificationRecord(
            email=request.email,
            token=request.token,
            issued_at=issued_at,
            expiry=issued_at + self.validity_window,
        )

    def _advance(self, state: InvocationState) -> None:
        self.log.debug(f"Verification state {self.state.value} -> {state.value}")
        self.state = state

    def _fail(self, error: VerificationException) -> None:
        self.failed_state = self.state
        self.failure = error
        self.state = InvocationState.FAILED

    def _wrap_unexpected(self, error: Exception) -> VerificationException:
        message = f"Unexpected error while {self.state.value}: {str(error)}"
        self.log.exception(message)

        if self.state == InvocationState.DISPATCHING:
            return DispatchError(message)
        if self.state == InvocationState.PERSISTING:
            return PersistError(message, record=self.record, email_sent=True)
        return DecodeError(message)
