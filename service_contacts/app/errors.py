"""
Domain errors raised by the Contacts Service.
"""

from typing import Union
from uuid import UUID

from shared.errors import ConflictError, NotFoundError


class ContactNotFoundError(NotFoundError):
    """No contact with the requested id."""

    def __init__(self, contact_id: Union[UUID, str]):
        super().__init__("Contact not found", details={"id": str(contact_id)}, code="NOT_FOUND")


class EmailExistsError(ConflictError):
    """Another contact already holds the email."""

    def __init__(self, email: str):
        super().__init__("Email already exists", details={"email": email}, code="EMAIL_EXISTS")
