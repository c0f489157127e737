"""
test_identity.py — Tests for the identity provider adapter.

Tests cover:
  - Local password checks before account creation
  - Sign-in, sign-up, federated sign-in and user lookup against the mock toolkit
  - Provider error codes mapped to the login form messages
  - Missing API key and network failures
"""

import httpx
import pytest

from order_submission.errors import AuthenticationError, ConfigurationError, NetworkError, ValidationError
from order_submission.identity import FRIENDLY_MESSAGES, FirebaseAuthClient, validate_new_password


class TestPasswordChecks:

    def test_mismatch(self):
        with pytest.raises(ValidationError, match="Passwords do not match. Please try again."):
            validate_new_password("secret123", "secret124")

    def test_too_short(self):
        with pytest.raises(ValidationError, match="at least 6 characters"):
            validate_new_password("abc", "abc")

    def test_six_characters_is_enough(self):
        validate_new_password("abcdef", "abcdef")


class TestFirebaseAuthClient:

    def test_sign_in(self, identity_client):
        session = identity_client.sign_in("buyer@example.com", "secret123")
        assert session.email == "buyer@example.com"
        assert session.id_token
        assert session.expires_in == 3600

    def test_wrong_password(self, identity_client):
        with pytest.raises(AuthenticationError) as exc_info:
            identity_client.sign_in("buyer@example.com", "wrong")
        assert exc_info.value.status_code == 401
        assert exc_info.value.message == FRIENDLY_MESSAGES["INVALID_LOGIN_CREDENTIALS"]
        assert exc_info.value.details == {"code": "INVALID_LOGIN_CREDENTIALS"}

    def test_create_account_signs_in(self, identity_client, identity_store):
        session = identity_client.create_account("new@example.com", "hunter22", "hunter22")
        assert session.email == "new@example.com"
        assert "new@example.com" in identity_store.ACCOUNTS

    def test_create_existing_account(self, identity_client):
        with pytest.raises(AuthenticationError, match="already exists"):
            identity_client.create_account("buyer@example.com", "hunter22", "hunter22")

    def test_mismatched_confirmation_makes_no_call(self, identity_client, identity_store):
        with pytest.raises(ValidationError):
            identity_client.create_account("new@example.com", "hunter22", "hunter23")
        assert "new@example.com" not in identity_store.ACCOUNTS

    def test_federated_sign_in(self, identity_client):
        session = identity_client.sign_in_with_idp("google:principal@school.org")
        assert session.email == "principal@school.org"

    def test_federated_sign_in_rejected(self, identity_client):
        with pytest.raises(AuthenticationError, match="external provider"):
            identity_client.sign_in_with_idp("not-a-google-token")

    def test_current_user(self, identity_client):
        session = identity_client.sign_in("buyer@example.com", "secret123")
        user = identity_client.current_user(session.id_token)
        assert user.email == "buyer@example.com"
        assert user.to_dict()["displayName"] == "Pat Buyer"

    @pytest.mark.parametrize("token", [None, "", "id-expired"])
    def test_current_user_without_valid_token(self, identity_client, token):
        assert identity_client.current_user(token) is None

    def test_missing_api_key(self, settings):
        client = FirebaseAuthClient(settings.model_copy(update={"firebase_api_key": None}))
        with pytest.raises(ConfigurationError, match="Firebase is not configured"):
            client.sign_in("buyer@example.com", "secret123")
        client.close()

    def test_network_failure(self, settings):
        def handler(request):
            raise httpx.ConnectError("offline", request=request)

        http_client = httpx.Client(base_url="https://identitytoolkit.googleapis.com/v1",
                                   transport=httpx.MockTransport(handler))
        with pytest.raises(NetworkError, match="internet connection"):
            FirebaseAuthClient(settings, http_client=http_client).sign_in("buyer@example.com", "secret123")
