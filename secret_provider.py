"""
Credential sources for the portal login

Credentials are read either from environment variables or from AWS Secrets
Manager. They are fetched once per run, before the browser is started, and
only live in memory.
"""

import os
from dataclasses import dataclass, field

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from booking_errors import SecretUnavailableError


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str = field(repr=False)
    otp_secret: str = field(repr=False)


@dataclass(frozen=True)
class SecretNames:
    username: str = 'GYM_USERNAME'
    password: str = 'GYM_PASSWORD'
    otp_secret: str = 'TOTP_SECRET'


class EnvSecretProvider:
    """Reads secrets from environment variables"""

    def get_secret(self, name: str) -> str:
        value = os.getenv(name)
        if not value:
            raise SecretUnavailableError(f"Please set {name} in your .env file", step="secrets")
        return value


class AwsSecretsManagerProvider:
    """Reads secrets from AWS Secrets Manager, one secret per name"""

    def __init__(self, region_name: str = None, client=None):
        self.region_name = region_name
        self._client = client

    def get_secret(self, name: str) -> str:
        try:
            # Created on first use so a missing region or profile surfaces as a secret error
            if self._client is None:
                self._client = boto3.client('secretsmanager', region_name=self.region_name)
            response = self._client.get_secret_value(SecretId=name)
        except (ClientError, BotoCoreError) as e:
            raise SecretUnavailableError(f"Could not read secret {name}: {e}", step="secrets") from e

        value = response.get('SecretString')
        if not value:
            raise SecretUnavailableError(f"Secret {name} has no string value", step="secrets")
        return value


def provider_from_config(config):
    """Pick the secret provider named by config.secret_source"""
    if config.secret_source == 'aws':
        return AwsSecretsManagerProvider(region_name=os.getenv('AWS_REGION'))
    return EnvSecretProvider()


def load_credentials(provider, names: SecretNames = SecretNames()) -> Credentials:
    """
    Fetch the three login secrets

    Args:
        provider: Object with a get_secret(name) method
        names: Secret names to request

    Returns:
        Credentials for this run

    Raises:
        SecretUnavailableError: if any secret cannot be read
    """
    return Credentials(
        username=provider.get_secret(names.username),
        password=provider.get_secret(names.password),
        otp_secret=provider.get_secret(names.otp_secret),
    )
