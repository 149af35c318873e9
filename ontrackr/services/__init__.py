"""Service layer — business logic orchestration."""


class ServiceError(Exception):
    """Base service exception."""


class NotFoundError(ServiceError):
    """Resource not found (-> HTTP 404)."""


class ConflictError(ServiceError):
    """Business rule conflict (-> HTTP 409)."""


class ValidationError(ServiceError):
    """Input validation or state transition error (-> HTTP 422)."""


class AuthenticationError(ServiceError):
    """Authentication failure (-> HTTP 401)."""


class WebhookError(ServiceError):
    """A delivery rejected before any per-record processing.

    Carries the HTTP status and the short ``error`` string of the webhook
    response envelope; ``str(exc)`` is the optional ``message``.
    """

    status_code = 400
    error = "Invalid payload"

    def __init__(self, message: str = "", *, error: str | None = None, **extra: str) -> None:
        super().__init__(message)
        if error is not None:
            self.error = error
        self.extra = extra


class MalformedWebhookError(WebhookError):
    """Missing event header or unusable payload (-> HTTP 400)."""


class InvalidSignatureError(WebhookError):
    """Missing or wrong X-Hub-Signature-256 (-> HTTP 401)."""

    status_code = 401
    error = "Invalid signature"


class UnroutableEventError(WebhookError):
    """No project tracks the delivery's repository (-> HTTP 404)."""

    status_code = 404
    error = "Project not found for this repository"


class WebhookConfigError(WebhookError):
    """Signature verification is on but no secret is configured (-> HTTP 500)."""

    status_code = 500
    error = "Webhook secret not configured"
