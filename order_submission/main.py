"""
main.py — FastAPI Entry Point for the Order Submission Service

This module provides the REST API used by the material order form. It is the
entry point between the browser and QuickBase (orders, reference data, contacts)
and Firebase (user accounts).

Responsibilities:
    • Load configuration once at startup and share the API clients
    • Serve reference option lists (schools/jobs, units of measure)
    • Check Material Orders access for signed-in users
    • Accept order submissions and run the submission workflow
    • Proxy sign-in / sign-up / sign-out to the identity provider
    • Render every service error as ``{"error": ..., "details": ...}``
"""

from typing import Optional

from fastapi import Depends, FastAPI, Header, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .access import AccessGate
from .clients import QuickBaseClient
from .config import Settings, load_settings
from .deps import get_identity_client, get_quickbase_client, get_settings
from .diagnostics import router as diagnostics_router
from .errors import OrderServiceError, ValidationError
from .identity import AuthSession, FirebaseAuthClient
from .logging_config import get_logger, setup_logging
from .models import (AccessCheckRequest, FederatedSignInRequest, OrderSubmissionRequest,
                     SignInRequest, SignUpRequest)
from .options import describe_order_tables, describe_table_fields, load_school_options, load_uom_options
from .workflow import process_order_submission

SESSION_COOKIE = "session"

# Initialization
# Configure logging and initialize FastAPI app
setup_logging()
log = get_logger(__name__)
app = FastAPI(title="Material Order Submission")
app.include_router(diagnostics_router, prefix="/diagnostics", tags=["diagnostics"])


# Startup Event: build configuration and clients
@app.on_event("startup")
def on_startup():
    """
    FastAPI startup event handler.

    Reads the config file and environment once and creates the shared
    QuickBase and Firebase clients. Missing configuration does not stop the
    service; the affected endpoints answer with a configuration error.
    """
    log.info("Order-Submission-Service startet...")
    settings = load_settings()
    app.state.settings = settings
    app.state.quickbase = QuickBaseClient(settings)
    app.state.identity = FirebaseAuthClient(settings)


@app.on_event("shutdown")
def on_shutdown():
    for name in ("quickbase", "identity"):
        client = getattr(app.state, name, None)
        if client is not None:
            client.close()


# --- Error handling ---
@app.exception_handler(OrderServiceError)
def handle_service_error(request: Request, exc: OrderServiceError):
    if exc.status_code >= 500:
        log.error(f"{request.method} {request.url.path} fehlgeschlagen ({exc.status_code}): {exc.message}")
    else:
        log.warning(f"{request.method} {request.url.path} abgelehnt ({exc.status_code}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
def handle_request_validation_error(request: Request, exc: RequestValidationError):
    errors = [{"loc": list(error.get("loc", ())), "msg": error.get("msg")} for error in exc.errors()]
    return JSONResponse(status_code=400, content={"error": "Invalid request body", "details": {"errors": errors}})


@app.exception_handler(Exception)
def handle_unexpected_error(request: Request, exc: Exception):
    log.critical(f"Unerwarteter Fehler bei {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"error": f"An error occurred: {exc}"})


# --- Order form endpoints ---
@app.post("/access-check")
def access_check(
        body: AccessCheckRequest,
        settings: Settings = Depends(get_settings),
        client: QuickBaseClient = Depends(get_quickbase_client)
):
    """
    Checks whether a user may place material orders.

    Returns:
        dict: ``{"hasAccess": bool, "reason": str, "record": {...}}``
    """
    return AccessGate(client, settings).check(body.email).to_dict()


@app.get("/order-table-fields")
def order_table_fields(
        settings: Settings = Depends(get_settings),
        client: QuickBaseClient = Depends(get_quickbase_client)
):
    return describe_order_tables(client, settings)


@app.get("/school-options")
def school_options(
        settings: Settings = Depends(get_settings),
        client: QuickBaseClient = Depends(get_quickbase_client)
):
    return load_school_options(client, settings)


@app.get("/uom-options")
def uom_options(
        settings: Settings = Depends(get_settings),
        client: QuickBaseClient = Depends(get_quickbase_client)
):
    return load_uom_options(client, settings)


@app.get("/table-fields")
def table_fields(
        tableId: Optional[str] = None,
        client: QuickBaseClient = Depends(get_quickbase_client)
):
    if not tableId:
        raise ValidationError("tableId query parameter is required")
    return describe_table_fields(client, tableId)


@app.post("/submit-order")
def submit_order(
        order: OrderSubmissionRequest,
        settings: Settings = Depends(get_settings),
        client: QuickBaseClient = Depends(get_quickbase_client)
):
    """
    Receives an order from the order form and writes it to QuickBase.

    The header record is written first, then all line items in one batch.
    If the line items fail, the header is removed again (see `workflow.py`).

    Args:
        order (OrderSubmissionRequest): Order header fields and line items.

    Returns:
        dict: JSON response containing:
            - success (bool): Always True on HTTP 200.
            - orderSubmissionId (int): Record id of the created header.
            - lineItemsCreated (int): Number of created line item records.
    """
    log.info(f"[Order: {order.orderedBy}] Neue Bestellung vom Formular erhalten.")
    return process_order_submission(client, settings, order)


# --- Identity provider endpoints ---
def _session_response(response: Response, session: AuthSession, settings: Settings,
                      client: QuickBaseClient) -> dict:
    """Stores the ID token as session cookie and runs the access check once for this login."""
    response.set_cookie(SESSION_COOKIE, session.id_token, max_age=session.expires_in,
                        httponly=True, samesite="lax")
    try:
        has_access = AccessGate(client, settings).check(session.email).has_access
    except OrderServiceError as e:
        log.error(f"[Auth] Zugriffsprüfung für {session.email} fehlgeschlagen: {e.message}")
        has_access = False
    return {
        "user": {"uid": session.local_id, "email": session.email},
        "idToken": session.id_token,
        "refreshToken": session.refresh_token,
        "expiresIn": session.expires_in,
        "hasAccess": has_access,
    }


def _bearer_or_cookie(request: Request, authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return request.cookies.get(SESSION_COOKIE)


@app.post("/auth/sign-in")
def sign_in(
        body: SignInRequest,
        response: Response,
        settings: Settings = Depends(get_settings),
        client: QuickBaseClient = Depends(get_quickbase_client),
        identity: FirebaseAuthClient = Depends(get_identity_client)
):
    session = identity.sign_in(body.email, body.password)
    return _session_response(response, session, settings, client)


@app.post("/auth/sign-up")
def sign_up(
        body: SignUpRequest,
        response: Response,
        settings: Settings = Depends(get_settings),
        client: QuickBaseClient = Depends(get_quickbase_client),
        identity: FirebaseAuthClient = Depends(get_identity_client)
):
    session = identity.create_account(body.email, body.password, body.confirmPassword)
    return _session_response(response, session, settings, client)


@app.post("/auth/federated")
def federated_sign_in(
        body: FederatedSignInRequest,
        response: Response,
        settings: Settings = Depends(get_settings),
        client: QuickBaseClient = Depends(get_quickbase_client),
        identity: FirebaseAuthClient = Depends(get_identity_client)
):
    session = identity.sign_in_with_idp(body.idToken, body.providerId, body.requestUri)
    return _session_response(response, session, settings, client)


@app.post("/auth/sign-out")
def sign_out(response: Response):
    response.delete_cookie(SESSION_COOKIE)
    return {"success": True, "user": None, "hasAccess": None}


@app.get("/auth/me")
def current_user(
        request: Request,
        authorization: Optional[str] = Header(None),
        settings: Settings = Depends(get_settings),
        client: QuickBaseClient = Depends(get_quickbase_client),
        identity: FirebaseAuthClient = Depends(get_identity_client)
):
    """
    Returns the signed-in user and their access state.

    The order form polls this endpoint to follow sign-in and sign-out.
    ``user`` is None when no valid session exists.
    """
    user = identity.current_user(_bearer_or_cookie(request, authorization))
    if user is None:
        return {"user": None, "hasAccess": None}
    has_access = False
    if user.email:
        try:
            has_access = AccessGate(client, settings).check(user.email).has_access
        except OrderServiceError as e:
            log.error(f"[Auth] Zugriffsprüfung für {user.email} fehlgeschlagen: {e.message}")
    return {"user": user.to_dict(), "hasAccess": has_access}


# Health Check Endpoint
@app.get("/health")
def health_check():
    """
    Simple health check endpoint.

    Returns:
        dict: A basic JSON object indicating service availability.
    """
    return {"status": "ok"}

