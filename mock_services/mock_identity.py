"""
mock_identity.py — Mock Implementation of the Firebase Authentication REST API

This module simulates the identity toolkit endpoints used by the order
submission service, with accounts held in memory.

Simulation Scenarios:
    • Password sign-in: unknown email or wrong password -> INVALID_LOGIN_CREDENTIALS
    • Sign-up: existing email -> EMAIL_EXISTS, short password -> WEAK_PASSWORD
    • Federated sign-in: the provider token "google:<email>" signs in (and creates) <email>;
      any other token -> INVALID_IDP_RESPONSE
    • Lookup: unknown ID token -> INVALID_ID_TOKEN
    • Wrong or missing API key -> API key not valid (HTTP 400)

Port:
    Default: 8003 (HTTP)
"""

import logging
import uuid
from typing import Dict, Optional
from urllib.parse import parse_qs

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

app = FastAPI(title="Mock Identity Toolkit")
logging.basicConfig(level=logging.INFO)

API_KEY = "mock-firebase-key"

# email -> {"localId", "password", "displayName"}
ACCOUNTS: Dict[str, dict] = {}
# idToken -> email
SESSIONS: Dict[str, str] = {}


class IdentityError(Exception):
    def __init__(self, code: str, detail: str = None):
        self.code = code
        self.detail = detail


@app.exception_handler(IdentityError)
def handle_identity_error(request: Request, exc: IdentityError):
    message = f"{exc.code} : {exc.detail}" if exc.detail else exc.code
    return JSONResponse(status_code=400, content={
        "error": {"code": 400, "message": message,
                  "errors": [{"message": message, "domain": "global", "reason": "invalid"}]}
    })


def reset():
    ACCOUNTS.clear()
    SESSIONS.clear()


def add_account(email: str, password: str, display_name: str = None) -> str:
    local_id = uuid.uuid4().hex[:28]
    ACCOUNTS[email.lower()] = {"localId": local_id, "password": password, "displayName": display_name}
    return local_id


def _check_key(key: Optional[str]):
    if key != API_KEY:
        logging.warning("[Identity] Ungültiger API-Key.")
        raise IdentityError("API key not valid. Please pass a valid API key.")


def _session(email: str) -> dict:
    account = ACCOUNTS[email.lower()]
    id_token = f"id-{uuid.uuid4().hex}"
    SESSIONS[id_token] = email.lower()
    return {
        "kind": "identitytoolkit#VerifyPasswordResponse",
        "localId": account["localId"],
        "email": email.lower(),
        "displayName": account.get("displayName") or "",
        "idToken": id_token,
        "refreshToken": f"refresh-{uuid.uuid4().hex}",
        "expiresIn": "3600",
        "registered": True,
    }


@app.post("/v1/accounts:signInWithPassword")
async def sign_in_with_password(request: Request, key: Optional[str] = None):
    _check_key(key)
    body = await request.json()
    email = (body.get("email") or "").lower()
    account = ACCOUNTS.get(email)
    if account is None or account["password"] != body.get("password"):
        logging.info(f"[Identity] Anmeldung für {email} abgelehnt.")
        raise IdentityError("INVALID_LOGIN_CREDENTIALS")
    logging.info(f"[Identity] Anmeldung für {email} erfolgreich.")
    return _session(email)


@app.post("/v1/accounts:signUp")
async def sign_up(request: Request, key: Optional[str] = None):
    _check_key(key)
    body = await request.json()
    email = (body.get("email") or "").lower()
    password = body.get("password") or ""
    if "@" not in email:
        raise IdentityError("INVALID_EMAIL")
    if email in ACCOUNTS:
        raise IdentityError("EMAIL_EXISTS")
    if len(password) < 6:
        raise IdentityError("WEAK_PASSWORD", "Password should be at least 6 characters")
    add_account(email, password)
    logging.info(f"[Identity] Konto {email} angelegt.")
    return _session(email)


@app.post("/v1/accounts:signInWithIdp")
async def sign_in_with_idp(request: Request, key: Optional[str] = None):
    _check_key(key)
    body = await request.json()
    params = parse_qs(body.get("postBody") or "")
    provider_token = (params.get("id_token") or [""])[0]
    if not provider_token.startswith("google:"):
        raise IdentityError("INVALID_IDP_RESPONSE", "Invalid Idp Response")
    email = provider_token.split(":", 1)[1].lower()
    if email not in ACCOUNTS:
        add_account(email, password=uuid.uuid4().hex)
    logging.info(f"[Identity] Föderierte Anmeldung für {email} erfolgreich.")
    return _session(email)


@app.post("/v1/accounts:lookup")
async def lookup(request: Request, key: Optional[str] = None):
    _check_key(key)
    body = await request.json()
    email = SESSIONS.get(body.get("idToken") or "")
    if email is None:
        raise IdentityError("INVALID_ID_TOKEN")
    account = ACCOUNTS[email]
    return {
        "kind": "identitytoolkit#GetAccountInfoResponse",
        "users": [{
            "localId": account["localId"],
            "email": email,
            "displayName": account.get("displayName"),
            "emailVerified": False,
        }],
    }


if __name__ == "__main__":
    import uvicorn

    add_account("buyer@example.com", "secret123", "Pat Buyer")
    logging.info("Mock Identity Toolkit startet auf Port 8003.")
    uvicorn.run(app, host="0.0.0.0", port=8003)
