"""Ownership variants for persisted positions.

A Position is either ``Named`` (user-curated, mutated only through explicit
basket operations) or ``Auto`` (reconciler-owned, freely deleted and
recreated).  The nullable ``positions.name`` column is the storage encoding;
everything above the ORM layer talks in terms of these two variants.
"""

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class Named:
    name: str
    notes: Optional[str] = None
    why: Optional[str] = None


@dataclass(frozen=True)
class Auto:
    pass


PositionOwner = Union[Named, Auto]


def is_named(owner: PositionOwner) -> bool:
    return isinstance(owner, Named)
