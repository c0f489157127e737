"""
errors.py — Error Taxonomy for the Order Submission Service

Every failure that reaches an HTTP caller is one of the exceptions below.
The FastAPI exception handler in `main.py` renders them as
``{"error": <message>, "details": {...}}`` using ``status_code``.

Hierarchy:
    OrderServiceError
    ├── ValidationError          (400, bad or missing input)
    ├── ConfigurationError       (500, missing credentials / table ids)
    ├── FieldResolutionError     (500, field cascade found nothing)
    ├── WriteError               (500, write succeeded but returned no record id)
    ├── AuthenticationError      (identity provider rejected the request)
    └── QuickBaseError
        ├── UpstreamError        (non-2xx from QuickBase, status propagated)
        ├── UpstreamTimeoutError (504)
        └── NetworkError         (500, transport failure)
"""


class OrderServiceError(Exception):
    """Base class. Carries a human-readable message and an optional details dict."""

    status_code = 500

    def __init__(self, message: str, details: dict = None, status_code: int = None):
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(OrderServiceError):
    status_code = 400


class ConfigurationError(OrderServiceError):
    status_code = 500


class FieldResolutionError(OrderServiceError):
    """No strategy of a field cascade matched. ``details`` lists every candidate field."""

    status_code = 500


class WriteError(OrderServiceError):
    status_code = 500


class AuthenticationError(OrderServiceError):
    status_code = 401


class QuickBaseError(OrderServiceError):
    """Any failure while talking to the QuickBase REST API."""


class UpstreamError(QuickBaseError):
    """QuickBase answered with a non-success status; the status is passed through."""

    def __init__(self, message: str, status_code: int, details: dict = None):
        super().__init__(message, details=details, status_code=status_code)


class UpstreamTimeoutError(QuickBaseError):
    status_code = 504


class NetworkError(QuickBaseError):
    status_code = 500
