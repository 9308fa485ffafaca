from typing import Any, Dict

import requests

from email_verification.layers.common.common_utils import (
    SEND_TIMEOUT_SECONDS,
    ConfigurationError,
    DispatchError,
    DispatchResult,
)
from email_verification.layers.common.config import MailConfig
from email_verification.layers.common.logging_utils import CorrelationLogger
from email_verification.layers.common.secrets_manager_utils import get_secret_value

VERIFICATION_SUBJECT = "Verify Your Email Address"


def build_verification_url(base_url: str, token: str) -> str:
    # token is appended as issued, no further encoding
    return f"{base_url}?token={token}"


class EmailDispatcher:
    """Sends the verification email through the SendGrid v3 mail send API."""

    def __init__(self, config: MailConfig, log: CorrelationLogger):
        self.config = config
        self.log = log

    def send(self, email: str, token: str) -> DispatchResult:
        if not email:
            raise DispatchError("Recipient email is empty")
        if not self.config.verification_url:
            raise DispatchError("VERIFICATION_URL is not configured")

        api_key = self._resolve_api_key()
        message = self.build_message(email, build_verification_url(self.config.verification_url, token))

        self.log.debug("Sending verification email", extra={
            'email': email,
            'template': self.config.template_id or None,
        })

        try:
            response = requests.post(
                self.config.api_url,
                json=message,
                headers={
                    'Authorization': f"Bearer {api_key}",
                    'Content-Type': 'application/json',
                },
                timeout=SEND_TIMEOUT_SECONDS,
            )
        except requests.exceptions.Timeout as e:
            raise DispatchError(f"Timeout sending email to {email} (timeout: {SEND_TIMEOUT_SECONDS}s)") from e
        except requests.exceptions.ConnectionError as e:
            raise DispatchError(f"Connection error sending email to {email}: {str(e)}") from e
        except requests.exceptions.RequestException as e:
            raise DispatchError(f"Request error sending email to {email}: {str(e)}") from e

        if not 200 <= response.status_code < 300:
            raise DispatchError(
                f"Email provider rejected send to {email}, HTTP status: {response.status_code}, body: {response.text}",
                status_code=response.status_code,
            )

        result = DispatchResult(status_code=response.status_code, body=response.text)
        self.log.info("Email sent successfully", extra={
            'statusCode': result.status_code,
            'body': result.body,
        })
        return result

    def build_message(self, email: str, verification_link: str) -> Dict[str, Any]:
        personalization: Dict[str, Any] = {
            'to': [{'email': email, 'name': self.config.recipient_name}],
        }
        message: Dict[str, Any] = {
            'from': {'email': self.config.sender_email, 'name': self.config.sender_name},
            'personalizations': [personalization],
        }

        if self.config.uses_template:
            message['template_id'] = self.config.template_id
            personalization['dynamic_template_data'] = {
                'verificationLink': verification_link,
                'contactLink': self.config.contact_link,
            }
            return message

        message['subject'] = VERIFICATION_SUBJECT
        message['content'] = [
            {
                'type': 'text/plain',
                'value': f"Please verify your email address by clicking on the link: {verification_link}",
            },
            {
                'type': 'text/html',
                'value': (
                    "Please verify your email address by clicking on the link: "
                    f"<a href=\"{verification_link}\">{verification_link}</a>"
                ),
            },
        ]
        return message

    def _resolve_api_key(self) -> str:
        if self.config.api_key:
            return self.config.api_key

        if not self.config.api_key_secret:
            raise DispatchError("SENDGRID_API_KEY or SENDGRID_API_KEY_SECRET must be configured")

        try:
            return get_secret_value(self.config.api_key_secret)
        except ConfigurationError as e:
            raise DispatchError(f"Email provider credential unavailable: {e.message}") from e
