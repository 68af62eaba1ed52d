"""Pydantic schemas for the checkout endpoints."""

from typing import Any, Optional

from pydantic import EmailStr, Field, field_validator

from theorem_shop.catalog.schemas import CartItem
from theorem_shop.common.schemas import CamelModel


def _strip(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


class IssueCodeRequest(CamelModel):
    email: EmailStr
    cart_total: float = Field(..., ge=0)
    items: list[CartItem] = Field(..., min_length=1)

    strip_email = field_validator("email", mode="before")(_strip)


class IssueCodeResponse(CamelModel):
    success: bool = True
    message: str = "Verification code sent to your email"
    cart_hash: str


class VerifyCodeRequest(CamelModel):
    email: EmailStr
    code: str = Field(..., min_length=1, max_length=12)
    cart_hash: str = Field(..., min_length=1)
    items: list[CartItem] = Field(..., min_length=1)
    total: float = Field(..., ge=0)

    strip_email = field_validator("email", mode="before")(_strip)

    @field_validator("code", mode="before")
    @classmethod
    def code_as_text(cls, value: Any) -> Any:
        # Some clients post the code as a number
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class VerifyCodeResponse(CamelModel):
    success: bool = True
    client_secret: Optional[str] = None
    payment_intent_id: Optional[str] = None
    is_free: Optional[bool] = None
    items: Optional[list[CartItem]] = None


class ConfirmPaymentRequest(CamelModel):
    payment_intent_id: str = Field(..., min_length=1)


class ConfirmPaymentResponse(CamelModel):
    success: bool = True
    already_fulfilled: bool = False
