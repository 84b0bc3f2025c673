"""
Pydantic schemas for visitor pass issuance, verification and reads.
"""

from datetime import datetime
from typing import Any, Optional
from pydantic import AliasChoices, BaseModel, Field, model_validator

from gatehouse.services.pass_policy import effective_status


class PassCreate(BaseModel):
    code: Optional[str] = Field(None, min_length=4, max_length=32)
    visitor_name: Optional[str] = Field(
        None,
        max_length=255,
        validation_alias=AliasChoices("visitor_name", "visitorName", "name"),
    )
    apartment_id: Optional[int] = Field(
        None, validation_alias=AliasChoices("apartment_id", "apartmentId")
    )
    qr_data: Optional[str] = Field(
        None, max_length=2000, validation_alias=AliasChoices("qr_data", "qrData", "qr")
    )
    # Kept raw: anything that isn't an ISO-8601 instant falls back to the default validity
    expires_at: Optional[Any] = Field(
        None, validation_alias=AliasChoices("expires_at", "expiresAt")
    )


class PassVerifyRequest(BaseModel):
    code: Optional[str] = Field(None, max_length=32)
    qr_data: Optional[str] = Field(
        None, max_length=2000, validation_alias=AliasChoices("qr_data", "qrData")
    )

    @model_validator(mode="after")
    def require_code_or_qr(self):
        if not (self.code and self.code.strip()) and not self.qr_data:
            raise ValueError("Either code or qr_data is required")
        return self


class PassResponse(BaseModel):
    id: int
    building_id: int
    apartment_id: Optional[int]
    code: str
    visitor_name: Optional[str]
    status: str
    created_by: int
    created_at: datetime
    expires_at: datetime
    verified_at: Optional[datetime]
    verified_by: Optional[int]

    model_config = {"from_attributes": True}

    @classmethod
    def from_pass(cls, visitor_pass, now: datetime) -> "PassResponse":
        """Report the effective status, so a lapsed pass reads as expired."""
        view = cls.model_validate(visitor_pass)
        return view.model_copy(update={"status": effective_status(visitor_pass, now)})


class PassCreateResponse(BaseModel):
    message: str
    pass_: PassResponse = Field(..., alias="pass")

    model_config = {"populate_by_name": True}


class VerificationResponse(BaseModel):
    valid: bool
    message: str
    status: str
    code: str
    visitor_name: Optional[str]
    apartment_id: Optional[int]
    created_by: int
    created_at: datetime
    expires_at: datetime
    verified_by: Optional[int]
    verified_at: Optional[datetime]
    time_remaining_minutes: int

    model_config = {"from_attributes": True}


class PassCancelResponse(BaseModel):
    message: str
    id: int
    status: str
