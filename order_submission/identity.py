"""
identity.py — Identity Provider Adapter (Firebase Authentication)

Credential and session management belong to Firebase. This adapter only
forwards sign-in, account creation and federated sign-in to the Firebase
Authentication REST API and looks up the user behind an ID token.
Token refresh and session persistence stay with the provider and the browser.
"""

import logging
from typing import Optional
from urllib.parse import urlencode

import httpx

from .config import Settings
from .errors import AuthenticationError, ConfigurationError, NetworkError, ValidationError

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"
MIN_PASSWORD_LENGTH = 6

log = logging.getLogger(__name__)

# Firebase-Fehlercodes -> Meldungen für das Login-Formular
FRIENDLY_MESSAGES = {
    "INVALID_LOGIN_CREDENTIALS": "Invalid email or password. Please try again.",
    "INVALID_PASSWORD": "Invalid email or password. Please try again.",
    "EMAIL_NOT_FOUND": "Invalid email or password. Please try again.",
    "EMAIL_EXISTS": "An account with this email already exists. Please sign in instead.",
    "WEAK_PASSWORD": "Password is too weak. Please choose a stronger password.",
    "INVALID_EMAIL": "Invalid email address. Please check and try again.",
    "USER_DISABLED": "This account has been disabled.",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many attempts. Please try again later.",
    "INVALID_ID_TOKEN": "Your session has expired. Please sign in again.",
    "TOKEN_EXPIRED": "Your session has expired. Please sign in again.",
    "INVALID_IDP_RESPONSE": "Sign-in with the external provider failed. Please try again.",
}


class AuthSession:
    """Result of a successful sign-in or sign-up."""

    def __init__(self, id_token: str, refresh_token: str, email: str, local_id: str, expires_in: int = 3600):
        self.id_token = id_token
        self.refresh_token = refresh_token
        self.email = email
        self.local_id = local_id
        self.expires_in = expires_in

    @classmethod
    def from_response(cls, data: dict):
        return cls(
            id_token=data.get("idToken"),
            refresh_token=data.get("refreshToken"),
            email=data.get("email"),
            local_id=data.get("localId"),
            expires_in=int(data.get("expiresIn") or 3600),
        )


class CurrentUser:
    def __init__(self, uid: str, email: Optional[str], display_name: Optional[str] = None,
                 email_verified: bool = False):
        self.uid = uid
        self.email = email
        self.display_name = display_name
        self.email_verified = email_verified

    def to_dict(self) -> dict:
        return {
            "uid": self.uid,
            "email": self.email,
            "displayName": self.display_name,
            "emailVerified": self.email_verified,
        }


def _error_code(response: httpx.Response) -> str:
    try:
        message = response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return ""
    # z.B. "WEAK_PASSWORD : Password should be at least 6 characters"
    return str(message).split(" ", 1)[0]


def validate_new_password(password: str, confirm_password: str):
    """
    Local checks performed before an account is created.

    Raises:
        ValidationError: If the confirmation differs or the password is too short.
    """
    if password != confirm_password:
        raise ValidationError("Passwords do not match. Please try again.")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")


class FirebaseAuthClient:
    """
    Client for the Firebase Authentication REST API.
    Handles password sign-in, account creation, federated sign-in and user lookup.
    """
    def __init__(self, settings: Settings, http_client: httpx.Client = None):
        self.settings = settings
        self._owns_client = http_client is None
        self.client = http_client or httpx.Client(base_url=IDENTITY_TOOLKIT_URL,
                                                  timeout=httpx.Timeout(10.0))

    def close(self):
        if self._owns_client:
            self.client.close()

    def _post(self, endpoint: str, payload: dict, action: str) -> dict:
        """
        Calls one identity toolkit endpoint.

        Raises:
            ConfigurationError: If no Firebase API key is configured.
            NetworkError: On connection problems.
            AuthenticationError: If Firebase rejects the request.
        """
        if not self.settings.firebase_api_key:
            raise ConfigurationError("Firebase is not configured. Please check your environment variables.",
                                     details={"missing": ["FIREBASE_API_KEY"]})
        try:
            response = self.client.post(f"/{endpoint}", params={"key": self.settings.firebase_api_key},
                                        json=payload)
        except httpx.TransportError as e:
            log.error(f"[Auth] Netzwerkfehler bei '{action}': {e}")
            raise NetworkError("Network error. Please check your internet connection.")

        if not response.is_success:
            code = _error_code(response)
            log.warning(f"[Auth] '{action}' abgelehnt: HTTP {response.status_code} {code or response.text[:200]}")
            status = 401 if response.status_code in (400, 401, 403) else response.status_code
            raise AuthenticationError(FRIENDLY_MESSAGES.get(code, code or f"Failed to {action}."),
                                      details={"code": code} if code else None, status_code=status)
        return response.json()

    def sign_in(self, email: str, password: str) -> AuthSession:
        data = self._post("accounts:signInWithPassword",
                          {"email": email, "password": password, "returnSecureToken": True},
                          "sign in")
        log.info(f"[Auth] Anmeldung erfolgreich: {data.get('email')}")
        return AuthSession.from_response(data)

    def create_account(self, email: str, password: str, confirm_password: str) -> AuthSession:
        """
        Creates an email/password account after local password checks.
        Args:
            email (str): New account's email.
            password (str): Chosen password, at least 6 characters.
            confirm_password (str): Must equal `password`.
        Returns:
            AuthSession: The new account is signed in immediately.
        """
        validate_new_password(password, confirm_password)
        data = self._post("accounts:signUp",
                          {"email": email, "password": password, "returnSecureToken": True},
                          "create account")
        log.info(f"[Auth] Konto angelegt: {data.get('email')}")
        return AuthSession.from_response(data)

    def sign_in_with_idp(self, id_token: str, provider_id: str = "google.com",
                         request_uri: str = "http://localhost") -> AuthSession:
        """Signs in with a credential obtained from a federated provider's popup flow."""
        payload = {
            "postBody": urlencode({"id_token": id_token, "providerId": provider_id}),
            "requestUri": request_uri,
            "returnIdpCredential": True,
            "returnSecureToken": True,
        }
        data = self._post("accounts:signInWithIdp", payload, "sign in with provider")
        log.info(f"[Auth] Föderierte Anmeldung ({provider_id}) erfolgreich: {data.get('email')}")
        return AuthSession.from_response(data)

    def current_user(self, id_token: Optional[str]) -> Optional[CurrentUser]:
        """
        Resolves the user behind an ID token.
        Returns:
            CurrentUser | None: None if there is no token or the token is no longer valid.
        """
        if not id_token:
            return None
        try:
            data = self._post("accounts:lookup", {"idToken": id_token}, "look up user")
        except AuthenticationError:
            return None
        users = data.get("users") or []
        if not users:
            return None
        user = users[0]
        return CurrentUser(
            uid=user.get("localId"),
            email=user.get("email"),
            display_name=user.get("displayName"),
            email_verified=bool(user.get("emailVerified", False)),
        )
