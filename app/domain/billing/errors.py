"""Billing error taxonomy"""


class BillingError(Exception):
    """Base class; ``status_code`` is the HTTP status the API answers with"""

    status_code = 500
    code = "billing_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or (self.__class__.__doc__ or self.code)


class Unauthorized(BillingError):
    """Caller lacks rights to this resource"""

    status_code = 403
    code = "unauthorized"


class Forbidden(BillingError):
    """Resource belongs to another owner"""

    status_code = 403
    code = "forbidden"


class AppointmentNotFound(BillingError):
    """Appointment not found"""

    status_code = 404
    code = "appointment_not_found"


class InvalidState(BillingError):
    """Required external metadata is missing or inconsistent"""

    status_code = 400
    code = "invalid_state"


class SubscriptionNotReady(BillingError):
    """Subscription is not in a billable state"""

    status_code = 400
    code = "subscription_not_ready"


class ProviderError(BillingError):
    """Payment provider request failed"""

    status_code = 502
    code = "provider_error"
