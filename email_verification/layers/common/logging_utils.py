import json
import logging
import os
from typing import Optional

SERVICE_NAME = "send-verification-email"
REDACTED = "***"


class JsonFormatter(logging.Formatter):
    STANDARD_FIELDS = {
        'name', 'msg', 'args', 'created', 'filename', 'funcName', 'levelname',
        'levelno', 'lineno', 'module', 'msecs', 'message', 'pathname', 'process',
        'processName', 'relativeCreated', 'thread', 'threadName', 'exc_info',
        'exc_text', 'stack_info', 'taskName'
    }
    # never written to the log stream, whichever component passes them as extra
    SENSITIVE_FIELDS = {'token', 'verificationToken', 'password', 'api_key', 'Authorization'}

    def __init__(self, service: str = SERVICE_NAME):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'service': self.service,
            'logger': record.name,
            'message': record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key in self.STANDARD_FIELDS:
                continue
            log_data[key] = REDACTED if key in self.SENSITIVE_FIELDS else value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class CorrelationLogger:
    """
    Logging handle injected into each component for one invocation.
    Every record carries the invocation's correlation id, so a test can pass a
    logger wired to a capturing handler instead of the process root logger.
    """

    def __init__(self, base_logger: logging.Logger, correlation_id: Optional[str] = None):
        self.base_logger = base_logger
        self.correlation_id = correlation_id

    def _log(self, level: int, message: str, **kwargs):
        extra = dict(kwargs.get('extra') or {})
        if self.correlation_id:
            extra['correlationId'] = self.correlation_id
        kwargs['extra'] = extra
        self.base_logger.log(level, message, **kwargs)

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, **kwargs)

    def exception(self, message: str, **kwargs):
        kwargs.setdefault('exc_info', True)
        self._log(logging.ERROR, message, **kwargs)


def setup_logging(service: str = SERVICE_NAME) -> logging.Logger:
    logger = logging.getLogger()
    logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())

    logging.getLogger('boto3').setLevel(logging.WARNING)
    logging.getLogger('botocore').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter(service))
        logger.addHandler(handler)
    else:
        for handler in logger.handlers:
            handler.setFormatter(JsonFormatter(service))

    return logger
