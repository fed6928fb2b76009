"""
Search routing for contact list queries.

Free text is matched case-insensitively against name and email, and as a raw
substring against the stored phone. When the text carries at least three
digits it is also treated as a phone number: phones are stored as entered
("+55 11 98888-8888"), so the digits are matched against a digit-only
projection of the phone column. That projection is a computed expression
the structured predicates cannot express, which is why this module holds the
only RawPredicate in the service.
"""

import re
from dataclasses import dataclass
from typing import Optional

from ..persistence.predicates import AnyOf, Contains, Predicate, RawPredicate, escape_like

MIN_PHONE_DIGITS = 3

# Digit-only projection of the phone column; the single bound parameter is a LIKE pattern
PHONE_DIGITS_SQL = "regexp_replace(phone, '[^0-9]', '', 'g') LIKE {}"

_NON_DIGITS = re.compile(r"\D")


@dataclass(frozen=True)
class SearchPlan:
    """Filter for a list query and whether it needs phone-digit matching."""
    where: Optional[Predicate] = None
    phone_search: bool = False
    phone_digits: str = ""


def normalize_phone_query(q: Optional[str]) -> str:
    """Strip everything but digits."""
    return _NON_DIGITS.sub("", q) if q else ""


def phone_digits_predicate(digits: str) -> RawPredicate:
    """Substring match of ``digits`` against the digit-only phone projection."""
    return RawPredicate(PHONE_DIGITS_SQL, (f"%{escape_like(digits)}%",))


def plan_search(q: Optional[str]) -> SearchPlan:
    """Build the filter for free-text query ``q``."""
    if not q:
        return SearchPlan()

    digits = normalize_phone_query(q)
    if len(digits) >= MIN_PHONE_DIGITS:
        return SearchPlan(
            where=AnyOf((
                Contains("name", q),
                Contains("email", q),
                phone_digits_predicate(digits),
            )),
            phone_search=True,
            phone_digits=digits,
        )

    return SearchPlan(
        where=AnyOf((
            Contains("name", q),
            Contains("email", q),
            Contains("phone", q, case_insensitive=False),
        )),
    )
