"""Tests for VaultSettings."""

from __future__ import annotations

import pytest

from phdvault.app.settings import VaultSettings


class TestFromEnv:

    def test_defaults(self):
        settings = VaultSettings.from_env({})
        assert settings.is_local
        assert settings.share_base_url == 'http://localhost:5173'
        assert settings.share_pin_max_failures == 5
        assert settings.share_verify_record_ownership is True
        assert settings.validate() == []

    def test_full_environment(self):
        settings = VaultSettings.from_env({
            'ENVIRONMENT': 'production',
            'SUPABASE_URL': 'https://xyz.supabase.co',
            'SUPABASE_SERVICE_ROLE_KEY': 'svc',
            'SUPABASE_JWT_SECRET': 'secret',
            'SUPABASE_TIMEOUT_SECONDS': '5',
            'SHARE_BASE_URL': 'https://vault.example.com',
            'SHARE_DEFAULT_HOURS': '0.25',
            'SHARE_MAX_HOURS': '24',
            'SHARE_VERIFY_RECORD_OWNERSHIP': 'false',
            'SHARE_PIN_MAX_FAILURES': '0',
            'SHARE_PIN_WINDOW_SECONDS': '60',
            'CORS_ORIGINS': 'https://vault.example.com, https://admin.example.com',
            'LOG_LEVEL': 'DEBUG',
            'LOG_FORMAT': 'console',
        })
        assert not settings.is_local
        assert settings.supabase_timeout_seconds == 5.0
        assert settings.share_default_hours == 0.25
        assert settings.share_max_hours == 24.0
        assert settings.share_verify_record_ownership is False
        assert settings.share_pin_max_failures == 0
        assert settings.cors_origins == ('https://vault.example.com', 'https://admin.example.com')
        assert settings.log_format == 'console'
        assert settings.validate() == []

    def test_non_numeric_value_rejected(self):
        with pytest.raises(ValueError, match='SHARE_MAX_HOURS'):
            VaultSettings.from_env({'SHARE_MAX_HOURS': 'forever'})


class TestValidate:

    def test_non_local_requires_supabase(self):
        errors = VaultSettings(environment='staging').validate()
        assert any('supabase_url' in e for e in errors)
        assert any('supabase_service_role_key' in e for e in errors)

    def test_default_duration_must_fit_max(self):
        errors = VaultSettings(share_default_hours=48, share_max_hours=24).validate()
        assert any('share_default_hours' in e for e in errors)

    def test_bad_log_format(self):
        assert VaultSettings(log_format='xml').validate()
