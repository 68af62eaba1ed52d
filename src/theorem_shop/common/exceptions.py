"""theorem-shop exception hierarchy.

Each error carries a machine-readable ``code`` and the HTTP status the API
reports it with.
"""


class ShopError(Exception):
    """Base exception for all theorem-shop errors."""

    status_code = 500

    def __init__(self, message: str = "", code: str = "SHOP_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(ShopError):
    """Raised when a request is missing fields or malformed."""

    status_code = 400

    def __init__(self, message: str = "Missing required fields"):
        super().__init__(message, code="VALIDATION_ERROR")


class TooManyRequestsError(ShopError):
    """Raised when a client exceeds an operation's rate limit."""

    status_code = 429

    def __init__(self, retry_after_seconds: int, message: str = ""):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            message or f"Too many requests. Please try again in {retry_after_seconds} seconds.",
            code="TOO_MANY_REQUESTS",
        )


# ── Verification-state errors (remedy: re-request or re-enter the code) ──


class VerificationError(ShopError):
    """Base class for single-use code failures."""

    status_code = 400


class CodeNotFoundError(VerificationError):
    def __init__(self, message: str = "Verification code not found or expired"):
        super().__init__(message, code="CODE_NOT_FOUND")


class CodeExpiredError(VerificationError):
    def __init__(self, message: str = "Verification code expired"):
        super().__init__(message, code="CODE_EXPIRED")


class CodeAlreadyUsedError(VerificationError):
    def __init__(self, message: str = "Verification code already used"):
        super().__init__(message, code="CODE_ALREADY_USED")


class CartMismatchError(VerificationError):
    def __init__(
        self,
        message: str = "Cart was modified. Please request a new verification code.",
    ):
        super().__init__(message, code="CART_MISMATCH")


class TooManyAttemptsError(VerificationError):
    def __init__(
        self,
        message: str = "Too many failed attempts. Please request a new code.",
    ):
        super().__init__(message, code="TOO_MANY_ATTEMPTS")


class InvalidCodeError(VerificationError):
    def __init__(self, message: str = "Invalid verification code"):
        super().__init__(message, code="INVALID_CODE")


# ── Integrity errors (remedy: refresh the cart) ──


class IntegrityError(ShopError):
    """Base class for cart/catalog disagreement."""

    status_code = 400


class PriceMismatchError(IntegrityError):
    def __init__(
        self,
        message: str = "Cart total does not match current prices. Please refresh your cart.",
    ):
        super().__init__(message, code="PRICE_MISMATCH")


class UnknownItemError(IntegrityError):
    def __init__(self, title: str):
        self.title = title
        super().__init__(f"Product not found: {title}", code="UNKNOWN_ITEM")


# ── Collaborator errors ──


class PaymentProcessorError(ShopError):
    """Raised when the payment processor rejects or fails a call."""

    status_code = 502

    def __init__(self, message: str = "Payment processing failed"):
        super().__init__(message, code="PAYMENT_PROCESSOR_ERROR")


class PaymentIncompleteError(ShopError):
    """Raised when fulfillment is requested for an intent that has not succeeded."""

    status_code = 409

    def __init__(self, message: str = "Payment has not completed"):
        super().__init__(message, code="PAYMENT_INCOMPLETE")


class StorageError(ShopError):
    """Raised when object storage cannot list or sign."""

    status_code = 502

    def __init__(self, message: str = "Storage request failed"):
        super().__init__(message, code="STORAGE_ERROR")


class EmailDeliveryError(ShopError):
    """Raised when an email provider does not accept a message."""

    status_code = 500

    def __init__(self, message: str = "Failed to send email"):
        super().__init__(message, code="EMAIL_DELIVERY_FAILED")


class FulfillmentError(ShopError):
    """Raised when download links cannot be minted or delivered."""

    status_code = 500

    def __init__(self, message: str = "Fulfillment failed"):
        super().__init__(message, code="FULFILLMENT_FAILED")


class MetadataError(ShopError):
    """Raised when purchase metadata cannot be encoded or reassembled."""

    status_code = 500

    def __init__(self, message: str = "Invalid purchase metadata"):
        super().__init__(message, code="METADATA_ERROR")


# ── Authentication ──


class InvalidSignatureError(ShopError):
    """Raised when an inbound webhook fails signature verification."""

    status_code = 400

    def __init__(self, message: str = "Invalid signature"):
        super().__init__(message, code="INVALID_SIGNATURE")


class UnauthorizedEmailError(ShopError):
    status_code = 403

    def __init__(self, message: str = "Unauthorized email"):
        super().__init__(message, code="UNAUTHORIZED_EMAIL")


class InvalidTokenError(ShopError):
    """Raised when a magic link is malformed, expired, or of the wrong type."""

    status_code = 401

    def __init__(self, message: str = "Invalid token", code: str = "INVALID_TOKEN"):
        super().__init__(message, code=code)


class TokenAlreadyUsedError(InvalidTokenError):
    def __init__(self, message: str = "Token already used"):
        super().__init__(message, code="TOKEN_ALREADY_USED")
