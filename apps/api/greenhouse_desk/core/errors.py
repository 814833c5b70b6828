"""Error kinds raised by the desk services.

Routers let these propagate; ``main`` turns them into JSON responses carrying
``detail`` and a stable ``code`` so clients can tell a denial from a missing
record or an unreachable backend.
"""


class DeskError(Exception):
    status_code = 400
    code = "error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.__class__.__doc__ or self.code
        super().__init__(self.detail)


class NotFound(DeskError):
    """Not found"""

    status_code = 404
    code = "not_found"


class PermissionDenied(DeskError):
    """Forbidden"""

    status_code = 403
    code = "forbidden"


class ValidationFailed(DeskError):
    """Invalid request"""

    status_code = 422
    code = "validation_failed"


class CorrelationMismatch(PermissionDenied):
    """Sender email does not match ticket requester"""

    code = "sender_mismatch"


class UnresolvableMessage(DeskError):
    """Could not identify ticket or department from email"""

    status_code = 400
    code = "unresolvable_message"


class SessionExpired(DeskError):
    """Session expired"""

    status_code = 401
    code = "session_expired"


class GatewayUnavailable(DeskError):
    """Service temporarily unavailable, please retry"""

    status_code = 503
    code = "gateway_unavailable"
    retryable = True


class MailDeliveryError(DeskError):
    """Mail provider rejected the request"""

    status_code = 502
    code = "mail_delivery_failed"


class MailAuthError(MailDeliveryError):
    """Could not acquire mail provider credentials"""

    code = "mail_auth_failed"
