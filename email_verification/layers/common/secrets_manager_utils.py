import logging
import os

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from email_verification.layers.common.common_utils import ConfigurationError

logger = logging.getLogger(__name__)
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())


def get_secret_value(secret_name: str) -> str:
    if not secret_name:
        raise ConfigurationError("Secret name is required")

    logger.debug(f"Fetching secret: {secret_name}")

    try:
        client = boto3.client("secretsmanager")
        response = client.get_secret_value(SecretId=secret_name)
    except (ClientError, BotoCoreError) as e:
        raise ConfigurationError(f"Failed to retrieve secret '{secret_name}': {e}") from e

    secret_str = response.get("SecretString")
    if not secret_str or not secret_str.strip():
        raise ConfigurationError(f"Secret '{secret_name}' is empty or contains only whitespace")

    return secret_str.strip()
