"""
Contact data models for the Contacts Service.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union
from uuid import UUID

import phonenumbers
from pydantic import BaseModel, ConfigDict, EmailStr, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel


class SortField(str, Enum):
    """Sortable contact columns, by their public name."""
    NAME = "name"
    EMAIL = "email"
    CREATED_AT = "createdAt"


class SortOrder(str, Enum):
    """Sort directions."""
    ASC = "asc"
    DESC = "desc"


class PaginationMode(str, Enum):
    """Pagination strategies."""
    OFFSET = "offset"
    KEYSET = "keyset"


# Storage column backing each sort field
SORT_COLUMNS = {
    SortField.NAME: "name",
    SortField.EMAIL: "email",
    SortField.CREATED_AT: "created_at",
}

MAX_PAGE_SIZE = 100
# Keeps (page - 1) * page_size inside a signed 64-bit OFFSET parameter
MAX_PAGE = 10_000_000


class ContactsModel(BaseModel):
    """Base model exchanging camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Contact(ContactsModel):
    """Immutable snapshot of a stored contact."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: UUID
    name: str
    email: str
    phone: str
    created_at: datetime
    updated_at: datetime


def validate_phone(value: str) -> str:
    """Accept numbers that parse in international format and are valid for their region.

    The number is returned exactly as provided; only its validity is checked.
    """
    try:
        parsed = phonenumbers.parse(value, None)
    except phonenumbers.NumberParseException as e:
        raise ValueError("Invalid phone number") from e
    if not phonenumbers.is_valid_number(parsed):
        raise ValueError("Invalid phone number")
    return value


class ContactCreateRequest(ContactsModel):
    """Request model for creating a contact."""
    name: str = Field(..., min_length=1, max_length=50, description="Display name")
    email: EmailStr = Field(..., description="Unique email address")
    phone: str = Field(..., description="Phone number in international format")

    @field_validator("phone")
    @classmethod
    def _check_phone(cls, value: str) -> str:
        return validate_phone(value)


class ContactUpdateRequest(ContactsModel):
    """Request model for a partial contact update."""
    name: Optional[str] = Field(None, min_length=1, max_length=50, description="Display name")
    email: Optional[EmailStr] = Field(None, description="Unique email address")
    phone: Optional[str] = Field(None, description="Phone number in international format")

    @field_validator("phone")
    @classmethod
    def _check_phone(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return validate_phone(value)


class ListContactsParams(ContactsModel):
    """Normalized list query parameters."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    q: Optional[str] = None
    page: int = Field(1, ge=1, le=MAX_PAGE)
    page_size: int = Field(10, ge=1, le=MAX_PAGE_SIZE)
    sort: SortField = SortField.CREATED_AT
    order: SortOrder = SortOrder.ASC
    pagination: PaginationMode = PaginationMode.OFFSET
    cursor: Optional[str] = None

    @field_validator("q", "cursor")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value


class OffsetPage(ContactsModel):
    """List envelope for offset pagination."""
    data: List[Contact]
    page: int
    page_size: int
    total: int
    total_pages: int
    pagination: Literal["offset"] = "offset"


class KeysetPage(ContactsModel):
    """List envelope for keyset pagination."""
    data: List[Contact]
    cursor: Optional[str] = None
    has_more: bool
    pagination: Literal["keyset"] = "keyset"


ContactPage = Annotated[Union[OffsetPage, KeysetPage], Field(discriminator="pagination")]

contact_page_adapter: TypeAdapter = TypeAdapter(ContactPage)
