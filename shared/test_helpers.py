"""
Test helper functions and factory methods for the Contacts Service.
"""

import os
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

FIRST_NAMES = [
    "Ana", "Bruno", "Carla", "Diego", "Elena", "Felipe", "Gabriela", "Hugo",
    "Isabel", "Joao", "Karen", "Lucas", "Marina", "Nicolas", "Olivia", "Pedro",
]

LAST_NAMES = ["Souza", "Lima", "Costa", "Smith", "Okafor", "Tanaka", "Mueller", "Rossi"]

# Phone layouts as users type them; "{n}" is a four-digit sequence number
PHONE_FORMATS = [
    "+55 11 9{n:04d}-{n:04d}",
    "+55 (21) 9{n:04d}-0000",
    "+1 650-253-{n:04d}",
    "+1 (202) 456-{n:04d}",
]


@dataclass
class TestContact:
    """Contact create payload."""
    name: str
    email: str
    phone: str

    def to_payload(self) -> Dict[str, Any]:
        return asdict(self)


class TestDataFactory:
    """Factory for creating test data."""

    @staticmethod
    def create_test_contact(index: int, domain: str = "example.com") -> TestContact:
        """Deterministic contact for sequence number ``index``."""
        first = FIRST_NAMES[index % len(FIRST_NAMES)]
        last = LAST_NAMES[(index // len(FIRST_NAMES)) % len(LAST_NAMES)]
        phone_format = PHONE_FORMATS[index % len(PHONE_FORMATS)]
        return TestContact(
            name=f"{first} {last}",
            email=f"{first.lower()}.{last.lower()}.{index}@{domain}",
            phone=phone_format.format(n=index % 10000),
        )

    @staticmethod
    def create_test_contacts(count: int, domain: str = "example.com") -> List[TestContact]:
        """Create ``count`` contacts with unique emails."""
        return [TestDataFactory.create_test_contact(index, domain) for index in range(count)]


class TestEnvironment:
    """Test environment configuration."""

    @staticmethod
    def get_service_url() -> Optional[str]:
        """Base URL of a running Contacts Service, if one is configured."""
        return os.getenv("CONTACTS_SERVICE_URL")

    @staticmethod
    def get_database_url() -> str:
        return os.getenv("CONTACTS_DATABASE_URL", "postgresql://localhost:5432/contacts")
