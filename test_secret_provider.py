from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, NoRegionError

from booking_config import BookingConfig
from booking_errors import SecretUnavailableError
from conftest import FakeProvider
from secret_provider import (
    AwsSecretsManagerProvider,
    Credentials,
    EnvSecretProvider,
    load_credentials,
    provider_from_config,
)


def test_load_credentials_requests_three_secrets():
    provider = FakeProvider()

    credentials = load_credentials(provider)

    assert provider.requested == ['GYM_USERNAME', 'GYM_PASSWORD', 'TOTP_SECRET']
    assert credentials == Credentials('student@example.edu', 'hunter2', 'JBSWY3DPEHPK3PXP')


def test_credentials_repr_hides_secrets():
    text = repr(Credentials('student@example.edu', 'hunter2', 'JBSWY3DPEHPK3PXP'))
    assert 'student@example.edu' in text
    assert 'hunter2' not in text
    assert 'JBSWY3DPEHPK3PXP' not in text


def test_env_provider_reads_environment(monkeypatch):
    monkeypatch.setenv('GYM_USERNAME', 'student@example.edu')
    assert EnvSecretProvider().get_secret('GYM_USERNAME') == 'student@example.edu'


def test_env_provider_missing_secret(monkeypatch):
    monkeypatch.delenv('GYM_PASSWORD', raising=False)
    with pytest.raises(SecretUnavailableError, match='GYM_PASSWORD'):
        EnvSecretProvider().get_secret('GYM_PASSWORD')


def test_env_provider_empty_secret(monkeypatch):
    monkeypatch.setenv('TOTP_SECRET', '')
    with pytest.raises(SecretUnavailableError):
        EnvSecretProvider().get_secret('TOTP_SECRET')


def test_aws_provider_reads_secret_string():
    client = MagicMock()
    client.get_secret_value.return_value = {'SecretString': 'hunter2'}

    assert AwsSecretsManagerProvider(client=client).get_secret('GYM_PASSWORD') == 'hunter2'
    client.get_secret_value.assert_called_once_with(SecretId='GYM_PASSWORD')


def test_aws_provider_client_error():
    client = MagicMock()
    client.get_secret_value.side_effect = ClientError(
        {'Error': {'Code': 'ResourceNotFoundException', 'Message': 'not found'}}, 'GetSecretValue')

    with pytest.raises(SecretUnavailableError, match='GYM_PASSWORD'):
        AwsSecretsManagerProvider(client=client).get_secret('GYM_PASSWORD')


def test_aws_provider_binary_secret_rejected():
    client = MagicMock()
    client.get_secret_value.return_value = {'SecretBinary': b'hunter2'}

    with pytest.raises(SecretUnavailableError):
        AwsSecretsManagerProvider(client=client).get_secret('GYM_PASSWORD')


def test_provider_from_config():
    assert isinstance(provider_from_config(BookingConfig()), EnvSecretProvider)
    with patch('secret_provider.boto3.client') as client:
        provider = provider_from_config(BookingConfig(secret_source='aws'))
        assert isinstance(provider, AwsSecretsManagerProvider)
        client.assert_not_called()

        client.return_value.get_secret_value.return_value = {'SecretString': 'hunter2'}
        assert provider.get_secret('GYM_PASSWORD') == 'hunter2'
        provider.get_secret('TOTP_SECRET')
    assert client.call_count == 1
    assert client.call_args[0] == ('secretsmanager',)


def test_aws_provider_without_region_raises_secret_error():
    with patch('secret_provider.boto3.client', side_effect=NoRegionError()):
        provider = AwsSecretsManagerProvider(region_name=None)
        with pytest.raises(SecretUnavailableError, match='GYM_USERNAME') as excinfo:
            provider.get_secret('GYM_USERNAME')

    assert excinfo.value.step == 'secrets'
    assert isinstance(excinfo.value.__cause__, NoRegionError)
