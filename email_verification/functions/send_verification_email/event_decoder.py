"""
Turns the raw message carried by the trigger event into a VerificationRequest.

The message body is JSON of the form {"email": ..., "verificationToken": ...}. Publishers
may or may not base64-encode it, so base64 is tried first and the raw bytes are used
when that fails.
"""
import base64
import binascii
import json
from typing import Optional, Union

from email_verification.layers.common.common_utils import DecodeError, VerificationRequest
from email_verification.layers.common.logging_utils import CorrelationLogger

EMAIL_FIELD = "email"
TOKEN_FIELD = "verificationToken"


class EventDecoder:
    def __init__(self, log: CorrelationLogger, log_payload: bool = False):
        self.log = log
        self.log_payload = log_payload

    def decode(self, payload: Optional[Union[bytes, str]]) -> VerificationRequest:
        if payload is None or len(payload) == 0:
            raise DecodeError("Event payload is empty")

        raw = payload.encode("utf-8") if isinstance(payload, str) else bytes(payload)
        data = self._unwrap_base64(raw)

        try:
            message = json.loads(data)
        except ValueError as e:
            self.log.error("Failed to parse verification message", extra={'error': str(e)})
            raise DecodeError(f"Payload is not valid JSON: {str(e)}") from e

        request = self._to_request(message)
        self.log.info("Verification message decoded", extra={'email': request.email})
        return request

    def _unwrap_base64(self, raw: bytes) -> bytes:
        try:
            # line-wrapped base64 (MIME style) is accepted, any other non-alphabet byte is not
            unwrapped = raw.strip().replace(b"\r", b"").replace(b"\n", b"")
            data = base64.b64decode(unwrapped, validate=True)
        except (binascii.Error, ValueError) as e:
            self.log.warning("Assuming data is not base64 encoded", extra={'error': str(e)})
            return raw

        if self.log_payload:
            self.log.info("Received base64 encoded data", extra={'data': data.decode("utf-8", errors="replace")})
        else:
            self.log.info("Received base64 encoded data", extra={'bytes': len(data)})
        return data

    @staticmethod
    def _to_request(message) -> VerificationRequest:
        if not isinstance(message, dict):
            raise DecodeError(f"Verification message must be a JSON object, got {type(message).__name__}")

        missing = [
            field for field in (EMAIL_FIELD, TOKEN_FIELD)
            if not isinstance(message.get(field), str) or not message[field]
        ]
        if missing:
            raise DecodeError(f"Verification message missing required fields: {', '.join(missing)}")

        return VerificationRequest(email=message[EMAIL_FIELD], token=message[TOKEN_FIELD])
