from typing import Optional


class RentalCoreException(Exception):
    status_code: int = 500
    default_message: str = "Internal server error"
    code: Optional[str] = None

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None):
        self.message = message or self.default_message
        if code is not None:
            self.code = code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.code:
            body["code"] = self.code
        return body


# --- 400 ---


class ValidationError(RentalCoreException):
    status_code = 400
    default_message = "Invalid request"


class BusinessRuleViolation(RentalCoreException):
    status_code = 400
    default_message = "Request violates a business rule"


class NoPaymentMethodException(BusinessRuleViolation):
    default_message = "No payment method found. Please add a payment method first."
    code = "NO_PAYMENT_METHOD"


class InvalidPaymentMethodException(BusinessRuleViolation):
    status_code = 403
    default_message = "Payment method not found or does not belong to user"
    code = "INVALID_PAYMENT_METHOD"


class StationUnavailableException(BusinessRuleViolation):
    default_message = "No power banks available at this station"
    code = "STATION_UNAVAILABLE"


class RentalNotActiveException(BusinessRuleViolation):
    default_message = "Rental is not active"
    code = "RENTAL_NOT_ACTIVE"


class PowerbankInUseException(BusinessRuleViolation):
    status_code = 409
    default_message = "Power bank already has an active rental"
    code = "POWERBANK_IN_USE"


class PointsAlreadyAwardedException(BusinessRuleViolation):
    default_message = "Points already awarded for this event"
    code = "POINTS_ALREADY_AWARDED"


# --- 401 / 403 ---


class AuthorizationError(RentalCoreException):
    status_code = 401
    default_message = "Invalid token"


class MissingAuthorizationException(AuthorizationError):
    default_message = "Missing authorization header"


class ForbiddenError(RentalCoreException):
    status_code = 403
    default_message = "Forbidden"


# --- 404 ---


class NotFoundError(RentalCoreException):
    status_code = 404
    default_message = "Not found"


class RentalNotFoundException(NotFoundError):
    default_message = "Rental not found"


class StationNotFoundException(NotFoundError):
    default_message = "Station not found"
    code = "STATION_NOT_FOUND"


# --- payment gateway ---


class GatewayError(RentalCoreException):
    status_code = 502
    default_message = "Payment processor error"


class PaymentFailedException(GatewayError):
    status_code = 400
    default_message = "Validation charge failed"
    code = "VALIDATION_CHARGE_FAILED"


class GatewayUnavailableException(GatewayError):
    default_message = "Payment processor unavailable"
    code = "GATEWAY_UNAVAILABLE"


# --- 503 / 500 ---


class ConfigurationError(RentalCoreException):
    status_code = 503
    default_message = "Service misconfigured"


class PaymentNotConfiguredException(ConfigurationError):
    default_message = "Payment processing not configured"
    code = "PAYMENT_NOT_CONFIGURED"


class InternalError(RentalCoreException):
    pass
