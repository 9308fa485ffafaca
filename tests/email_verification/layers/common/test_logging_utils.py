import json
import logging
import sys
from datetime import datetime

import pytest

from email_verification.layers.common.logging_utils import CorrelationLogger, JsonFormatter, setup_logging


@pytest.fixture
def logger():
    test_logger = logging.getLogger('test_logger')
    test_logger.setLevel(logging.DEBUG)
    test_logger.handlers = []
    return test_logger


@pytest.fixture
def json_formatter():
    return JsonFormatter()


@pytest.fixture
def basic_record():
    return logging.LogRecord(
        name='test',
        level=logging.INFO,
        pathname='test.py',
        lineno=10,
        msg='Email sent successfully',
        args=(),
        exc_info=None
    )


def get_log_data(formatter, record):
    return json.loads(formatter.format(record))


def test_json_formatter_basic_message(json_formatter, basic_record):
    log_data = get_log_data(json_formatter, basic_record)

    assert log_data['level'] == 'INFO'
    assert log_data['message'] == 'Email sent successfully'
    assert 'timestamp' in log_data


def test_json_formatter_with_extra_fields(json_formatter, basic_record):
    basic_record.correlationId = 'event-123'
    basic_record.statusCode = 202
    basic_record.resource = 'projects/demo/topics/verify-email'

    log_data = get_log_data(json_formatter, basic_record)

    assert log_data['correlationId'] == 'event-123'
    assert log_data['statusCode'] == 202
    assert log_data['resource'] == 'projects/demo/topics/verify-email'


def test_json_formatter_excludes_standard_fields(json_formatter, basic_record):
    log_data = get_log_data(json_formatter, basic_record)

    assert 'name' not in log_data
    assert 'pathname' not in log_data
    assert 'lineno' not in log_data
    assert 'module' not in log_data


def test_json_formatter_serialises_non_json_values(json_formatter, basic_record):
    basic_record.expiry = datetime(2025, 1, 15, 10, 32, 0)

    log_data = get_log_data(json_formatter, basic_record)

    assert log_data['expiry'] == '2025-01-15 10:32:00'


def test_json_formatter_includes_exception(json_formatter):
    try:
        raise ValueError("boom")
    except ValueError:
        record = logging.LogRecord('test', logging.ERROR, 'test.py', 1, 'failed', (), sys.exc_info())

    log_data = get_log_data(json_formatter, record)

    assert 'ValueError: boom' in log_data['exception']


def test_correlation_logger_adds_correlation_id(logger, json_formatter, caplog):
    correlation_logger = CorrelationLogger(logger, 'event-123')

    with caplog.at_level(logging.INFO, logger='test_logger'):
        correlation_logger.info('Email sent successfully', extra={'statusCode': 202})

    assert len(caplog.records) == 1
    log_data = get_log_data(json_formatter, caplog.records[0])
    assert log_data['correlationId'] == 'event-123'
    assert log_data['statusCode'] == 202


def test_correlation_logger_without_correlation_id(logger, json_formatter, caplog):
    correlation_logger = CorrelationLogger(logger, None)

    with caplog.at_level(logging.INFO, logger='test_logger'):
        correlation_logger.info('Email sent successfully', extra={'statusCode': 202})

    log_data = get_log_data(json_formatter, caplog.records[0])
    assert 'correlationId' not in log_data
    assert log_data['statusCode'] == 202


def test_correlation_logger_does_not_mutate_caller_extra(logger, caplog):
    correlation_logger = CorrelationLogger(logger, 'event-123')
    extra = {'email': 'user@example.com'}

    with caplog.at_level(logging.INFO, logger='test_logger'):
        correlation_logger.info('Verification message decoded', extra=extra)

    assert extra == {'email': 'user@example.com'}


def test_correlation_logger_all_log_levels(logger, json_formatter, caplog):
    correlation_logger = CorrelationLogger(logger, 'test-id')

    with caplog.at_level(logging.DEBUG, logger='test_logger'):
        correlation_logger.debug('Debug message')
        correlation_logger.info('Info message')
        correlation_logger.warning('Warning message')
        correlation_logger.error('Error message')

    levels = [record.levelname for record in caplog.records]
    assert levels == ['DEBUG', 'INFO', 'WARNING', 'ERROR']

    for record in caplog.records:
        assert get_log_data(json_formatter, record)['correlationId'] == 'test-id'


def test_setup_logging_installs_json_formatter():
    root = setup_logging()

    assert root is logging.getLogger()
    assert root.handlers
    assert all(isinstance(handler.formatter, JsonFormatter) for handler in root.handlers)
    assert logging.getLogger('botocore').level == logging.WARNING


def test_json_formatter_adds_service_and_logger_name(basic_record):
    log_data = get_log_data(JsonFormatter('verification-test'), basic_record)

    assert log_data['service'] == 'verification-test'
    assert log_data['logger'] == 'test'


def test_json_formatter_defaults_service_name(json_formatter, basic_record):
    assert get_log_data(json_formatter, basic_record)['service'] == 'send-verification-email'


@pytest.mark.parametrize("field", ['token', 'verificationToken', 'password', 'api_key', 'Authorization'])
def test_json_formatter_redacts_sensitive_fields(json_formatter, basic_record, field):
    setattr(basic_record, field, 'abc123')
    basic_record.email = 'user@example.com'

    log_data = get_log_data(json_formatter, basic_record)

    assert log_data[field] == '***'
    assert log_data['email'] == 'user@example.com'
    assert 'abc123' not in json_formatter.format(basic_record)


def test_correlation_logger_exception_includes_traceback(logger, json_formatter, caplog):
    correlation_logger = CorrelationLogger(logger, 'event-123')

    with caplog.at_level(logging.ERROR, logger='test_logger'):
        try:
            raise RuntimeError("provider down")
        except RuntimeError:
            correlation_logger.exception('Unexpected error while dispatching')

    log_data = get_log_data(json_formatter, caplog.records[0])
    assert log_data['level'] == 'ERROR'
    assert log_data['correlationId'] == 'event-123'
    assert 'RuntimeError: provider down' in log_data['exception']
