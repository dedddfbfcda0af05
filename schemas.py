from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SavingsGoalIn(ApiModel):
    wallet_id: int
    name: Optional[str] = Field(default=None, max_length=100)
    target_amount: Optional[Decimal] = Field(
        default=None, ge=0, max_digits=14, decimal_places=2
    )
    initial_amount: Optional[Decimal] = Field(
        default=None, ge=0, max_digits=14, decimal_places=2
    )


class SavingsGoalUpdate(ApiModel):
    """Partial update; only fields present in the request body are applied."""

    name: Optional[str] = Field(default=None, max_length=100)
    target_amount: Optional[Decimal] = Field(
        default=None, ge=0, max_digits=14, decimal_places=2
    )
    current_amount: Optional[Decimal] = Field(
        default=None, max_digits=14, decimal_places=2
    )


class SavingsEntryIn(ApiModel):
    amount: Decimal = Field(..., max_digits=14, decimal_places=2)
    note: Optional[str] = Field(default=None, max_length=200)

    @field_validator("amount")
    @classmethod
    def amount_not_zero(cls, value: Decimal) -> Decimal:
        if value == 0:
            raise ValueError("Amount must not be zero")
        return value


class SignupIn(ApiModel):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    name: Optional[str] = Field(default=None, max_length=120)


class LoginIn(ApiModel):
    email: EmailStr
    password: str = Field(..., max_length=128)


class GoogleAuthIn(ApiModel):
    credential: str = Field(..., min_length=1)


class EmailIn(ApiModel):
    email: EmailStr


class ResetTokenIn(ApiModel):
    token: str = Field(..., min_length=1)


class ResetCodeIn(ApiModel):
    token: str = Field(..., min_length=1)
    code: str = Field(..., min_length=6, max_length=6)


class ResetPasswordIn(ResetCodeIn):
    new_password: str = Field(..., min_length=6, max_length=128)


class ChangePasswordIn(ApiModel):
    current_password: str
    new_password: str = Field(..., min_length=6, max_length=128)
