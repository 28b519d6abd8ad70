"""Tests for Supabase JWT token verification.

Validates:
  - HS256 and RS256 signature verification
  - Audience and expiry enforcement
  - Vault role extraction from app_metadata / user_metadata
  - Bearer token extraction from request headers
  - Factory selection between static secret and JWKS
"""

from __future__ import annotations

import time
from unittest.mock import MagicMock

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from phdvault.app.security.token_verify import (
    JWKSKeyProvider,
    StaticKeyProvider,
    TokenVerificationError,
    TokenVerifier,
    create_token_verifier,
    extract_bearer_token,
)

TEST_SECRET = 'test-jwt-secret-for-unit-tests-only'
TEST_AUDIENCE = 'authenticated'

_rsa_private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
RSA_PRIVATE_PEM = _rsa_private_key.private_bytes(
    encoding=serialization.Encoding.PEM,
    format=serialization.PrivateFormat.TraditionalOpenSSL,
    encryption_algorithm=serialization.NoEncryption(),
)


def _claims(**overrides):
    claims = {
        'sub': 'user-123',
        'email': 'Patient@Example.com',
        'aud': TEST_AUDIENCE,
        'exp': int(time.time()) + 3600,
        'iat': int(time.time()),
    }
    claims.update(overrides)
    return claims


def _hs256(**overrides) -> str:
    return jwt.encode(_claims(**overrides), TEST_SECRET, algorithm='HS256')


@pytest.fixture
def verifier() -> TokenVerifier:
    return TokenVerifier(StaticKeyProvider(TEST_SECRET), TEST_AUDIENCE, ['HS256'])


class TestVerify:

    def test_valid_token(self, verifier):
        identity = verifier.verify(_hs256())
        assert identity.user_id == 'user-123'
        assert identity.email == 'patient@example.com'
        assert identity.role == 'patient'
        assert not identity.is_doctor

    def test_rs256_token(self):
        token = jwt.encode(_claims(), RSA_PRIVATE_PEM, algorithm='RS256')
        provider = MagicMock()
        provider.get_signing_key.return_value = _rsa_private_key.public_key()

        identity = TokenVerifier(provider, TEST_AUDIENCE).verify(token)
        assert identity.user_id == 'user-123'

    def test_expired_token(self, verifier):
        with pytest.raises(TokenVerificationError) as exc:
            verifier.verify(_hs256(exp=int(time.time()) - 10))
        assert exc.value.code == 'token_expired'

    def test_wrong_audience(self, verifier):
        with pytest.raises(TokenVerificationError) as exc:
            verifier.verify(_hs256(aud='anon'))
        assert exc.value.code == 'invalid_audience'

    def test_bad_signature(self, verifier):
        token = jwt.encode(_claims(), 'another-secret-of-sufficient-length', algorithm='HS256')
        with pytest.raises(TokenVerificationError) as exc:
            verifier.verify(token)
        assert exc.value.code == 'invalid_token'

    def test_missing_sub(self, verifier):
        claims = _claims()
        del claims['sub']
        with pytest.raises(TokenVerificationError):
            verifier.verify(jwt.encode(claims, TEST_SECRET, algorithm='HS256'))

    def test_empty_token(self, verifier):
        with pytest.raises(TokenVerificationError) as exc:
            verifier.verify('  ')
        assert exc.value.code == 'empty_token'

    def test_malformed_token_via_jwks_is_invalid_token(self):
        verifier = TokenVerifier(
            JWKSKeyProvider('https://x.supabase.co/auth/v1/.well-known/jwks.json'),
            TEST_AUDIENCE,
        )
        with pytest.raises(TokenVerificationError) as exc:
            verifier.verify('not-a-jwt')
        assert exc.value.code == 'invalid_token'


class TestRoleClaims:

    def test_app_metadata_role(self, verifier):
        identity = verifier.verify(_hs256(app_metadata={'role': 'doctor'}))
        assert identity.is_doctor

    def test_app_metadata_wins_over_user_metadata(self, verifier):
        identity = verifier.verify(_hs256(
            app_metadata={'role': 'patient'}, user_metadata={'role': 'doctor'},
        ))
        assert identity.role == 'patient'

    def test_user_metadata_role_is_ignored_by_default(self, verifier):
        identity = verifier.verify(_hs256(user_metadata={'role': 'doctor'}))
        assert identity.role == 'patient'

    def test_user_metadata_fallback_when_trusted(self):
        verifier = TokenVerifier(
            StaticKeyProvider(TEST_SECRET), TEST_AUDIENCE, ['HS256'],
            trust_user_metadata=True,
        )
        identity = verifier.verify(_hs256(user_metadata={'role': 'Doctor'}))
        assert identity.role == 'doctor'

    def test_unknown_role_defaults_to_patient(self, verifier):
        identity = verifier.verify(_hs256(app_metadata={'role': 'admin'}))
        assert identity.role == 'patient'


class TestExtractBearerToken:

    def test_bearer_header(self):
        request = MagicMock()
        request.headers = {'authorization': 'Bearer abc.def'}
        assert extract_bearer_token(request) == 'abc.def'

    def test_missing_or_other_scheme(self):
        request = MagicMock()
        request.headers = {'authorization': 'Basic xyz'}
        assert extract_bearer_token(request) is None
        request.headers = {}
        assert extract_bearer_token(request) is None


class TestFactory:

    def test_secret_wins(self):
        verifier = create_token_verifier('https://x.supabase.co', TEST_SECRET)
        assert isinstance(verifier._key_provider, StaticKeyProvider)

    def test_jwks_when_no_secret(self):
        verifier = create_token_verifier('https://x.supabase.co/')
        assert isinstance(verifier._key_provider, JWKSKeyProvider)

    def test_user_metadata_trust_is_passed_through(self):
        verifier = create_token_verifier(jwt_secret=TEST_SECRET, trust_user_metadata=True)
        assert verifier._trust_user_metadata is True
        assert create_token_verifier(jwt_secret=TEST_SECRET)._trust_user_metadata is False

    def test_requires_one_source(self):
        with pytest.raises(ValueError):
            create_token_verifier()
