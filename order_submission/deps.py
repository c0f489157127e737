"""FastAPI dependencies: shared configuration and API clients created at startup."""
from fastapi import Request

from .clients import QuickBaseClient
from .config import Settings
from .identity import FirebaseAuthClient


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_quickbase_client(request: Request) -> QuickBaseClient:
    return request.app.state.quickbase


def get_identity_client(request: Request) -> FirebaseAuthClient:
    return request.app.state.identity
