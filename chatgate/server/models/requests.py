"""Request models for API endpoints.

Bodies are camelCase on the wire; fields may also be populated by their
Python names.
"""
from typing import Annotated, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class CreateConnectionRequest(_CamelModel):
    pairing_method: Annotated[Literal["qr", "code"], Field(alias="pairingMethod")] = "qr"
    phone_number: Annotated[Optional[str], Field(alias="phoneNumber")] = None

    @field_validator("phone_number")
    @classmethod
    def empty_as_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None


class SendMessageRequest(_CamelModel):
    connection_id: Annotated[str, Field(alias="connectionId", min_length=1)]
    to: Annotated[str, Field(min_length=1)]
    message: Annotated[str, Field(min_length=1, max_length=65536)]


class ValidateNumberRequest(_CamelModel):
    connection_id: Annotated[str, Field(alias="connectionId", min_length=1)]
    number: Annotated[str, Field(min_length=1, max_length=64)]
