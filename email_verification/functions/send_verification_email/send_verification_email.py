from typing import Any, Optional

from email_verification.functions.send_verification_email.event_decoder import EventDecoder
from email_verification.functions.send_verification_email.orchestrator import VerificationOrchestrator
from email_verification.layers.common.common_utils import ConfigurationError, PersistError, VerificationException
from email_verification.layers.common.config import VerificationConfig, load_config
from email_verification.layers.common.db_utils import RecordStore
from email_verification.layers.common.logging_utils import CorrelationLogger, setup_logging
from email_verification.layers.common.mail_utils import EmailDispatcher

logger = setup_logging()

cached_config: Optional[VerificationConfig] = None


def get_config() -> VerificationConfig:
    global cached_config

    if cached_config is None:
        cached_config = load_config()
    return cached_config


def build_orchestrator(config: VerificationConfig, log: CorrelationLogger) -> VerificationOrchestrator:
    return VerificationOrchestrator(
        decoder=EventDecoder(log, log_payload=config.log_payload),
        dispatcher=EmailDispatcher(config.mail, log),
        store=RecordStore(config.database, log, config.table_name, config.timestamp_mode),
        validity_window=config.validity_window,
        log=log,
    )


def context_value(context: Any, *names: str) -> Optional[Any]:
    for name in names:
        value = getattr(context, name, None)
        if value:
            return value if isinstance(value, (str, dict)) else str(value)
    return None


def extract_payload(event: Any):
    if isinstance(event, dict):
        return event.get("data")
    return event


def handler(event: Any, context: Any) -> dict:
    log = CorrelationLogger(logger, context_value(context, "event_id", "aws_request_id"))
    resource = context_value(context, "resource", "invoked_function_arn") or "unknown"
    log.info("Function triggered by change to resource", extra={'resource': resource})

    try:
        config = get_config()
    except ConfigurationError as e:
        log.error(f"Invalid configuration: {e.message}", extra={'outcome': 'failed', 'errorKind': 'ConfigurationError'})
        raise

    orchestrator = build_orchestrator(config, log)

    try:
        outcome = orchestrator.run(extract_payload(event))
    except PersistError as e:
        if e.email_sent:
            record = e.record
            log.error("Verification email sent but record not persisted", extra={
                'outcome': 'sent_not_recorded',
                'phase': e.phase.value,
                'email': record.email if record else None,
                'expiry': record.expiry.isoformat() if record else None,
                'error': e.message,
            })
        else:
            log.error(f"Verification failed: {e.message}", extra=failure_fields(orchestrator, e))
        raise
    except VerificationException as e:
        log.error(f"Verification failed: {e.message}", extra=failure_fields(orchestrator, e))
        raise

    log.info("Verification email sent and recorded", extra={'email': outcome.request.email})
    return {
        "status": "success",
        "email": outcome.record.email,
        "issued_at": outcome.record.issued_at.isoformat(),
        "expiry": outcome.record.expiry.isoformat(),
        "provider_status": outcome.dispatch.status_code,
    }


def failure_fields(orchestrator: VerificationOrchestrator, error: VerificationException) -> dict:
    return {
        'outcome': 'failed',
        'errorKind': type(error).__name__,
        'state': orchestrator.failed_state.value if orchestrator.failed_state else None,
    }
