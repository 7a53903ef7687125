"""Tests for settings validation."""

import pytest

from attest_api.settings import DEV_PROVENANCE_SECRET, Settings

PRODUCTION = {
    "environment": "production",
    "provenance_secret": "a-real-secret",
    "gateway_key": "gateway",
    "provenance_nonce_backend": "redis",
    "storage_backend": "minio",
    "minio_access_key": "access",
    "minio_secret_key": "secret",
}


def _settings(**overrides):
    return Settings(**{**PRODUCTION, **overrides})


def test_complete_production_settings_pass():
    _settings().validate_production_settings()


def test_development_skips_checks():
    Settings(environment="development", provenance_secret=DEV_PROVENANCE_SECRET).validate_production_settings()


@pytest.mark.parametrize(
    "overrides,message",
    [
        ({"provenance_secret": DEV_PROVENANCE_SECRET}, "PROVENANCE_SECRET"),
        ({"gateway_key": None}, "GATEWAY_KEY"),
        ({"provenance_nonce_backend": "memory"}, "PROVENANCE_NONCE_BACKEND"),
        ({"minio_secret_key": None}, "MINIO_ACCESS_KEY"),
    ],
)
def test_unsafe_production_settings_rejected(overrides, message):
    with pytest.raises(ValueError, match=message):
        _settings(**overrides).validate_production_settings()


def test_database_url_computed():
    settings = Settings(database_url=None, postgres_user="u", postgres_password="p",
                        postgres_host="db", postgres_port=5433, postgres_db="ledger")
    assert settings.database_url_computed == "postgresql://u:p@db:5433/ledger"
