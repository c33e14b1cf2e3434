"""
Value objects shared across the citation domain.

Location describes where a violation was observed.  DocumentNumber is the
externally visible citation / contest number: ``<PREFIX>-<YEAR>-<NNNNNN>``.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from citation_kernel.exceptions import ValidationError

_DOCUMENT_NO_RE = re.compile(r"^(?P<prefix>[A-Z]+)-(?P<year>\d{4})-(?P<seq>\d+)$")


@dataclass(frozen=True)
class Location:
    """Where the violation happened. Coordinates are optional."""

    barangay: str
    city: str
    province: str
    street: str | None = None
    latitude: Decimal | None = None
    longitude: Decimal | None = None

    def __post_init__(self) -> None:
        errors = {
            f"location.{name}": "is required"
            for name in ("barangay", "city", "province")
            if not (getattr(self, name) or "").strip()
        }
        if (self.latitude is None) != (self.longitude is None):
            errors["location.coordinates"] = "latitude and longitude must be given together"
        if errors:
            raise ValidationError(errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "street": self.street,
            "barangay": self.barangay,
            "city": self.city,
            "province": self.province,
            "latitude": str(self.latitude) if self.latitude is not None else None,
            "longitude": str(self.longitude) if self.longitude is not None else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Location":
        lat = data.get("latitude")
        lon = data.get("longitude")
        return cls(
            street=data.get("street"),
            barangay=data.get("barangay", ""),
            city=data.get("city", ""),
            province=data.get("province", ""),
            latitude=Decimal(str(lat)) if lat is not None else None,
            longitude=Decimal(str(lon)) if lon is not None else None,
        )


@dataclass(frozen=True)
class DocumentNumber:
    """Human-readable, per-year sequential document number."""

    prefix: str
    year: int
    sequence: int
    width: int = 6

    def __str__(self) -> str:
        return f"{self.prefix}-{self.year:04d}-{self.sequence:0{self.width}d}"

    @property
    def scope(self) -> str:
        """Counter name that serializes allocation for this prefix and year."""
        return counter_scope(self.prefix, self.year)

    @classmethod
    def parse(cls, value: str) -> "DocumentNumber":
        match = _DOCUMENT_NO_RE.match(value or "")
        if match is None:
            raise ValidationError({"document_no": f"malformed document number {value!r}"})
        seq = match.group("seq")
        return cls(
            prefix=match.group("prefix"),
            year=int(match.group("year")),
            sequence=int(seq),
            width=len(seq),
        )


def counter_scope(prefix: str, year: int) -> str:
    return f"{prefix}-{year:04d}"


def require_aware(**stamps: datetime | None) -> None:
    """Reject naive datetimes; None means "not supplied" and passes."""
    errors = {
        name: "must be timezone-aware"
        for name, value in stamps.items()
        if value is not None and value.tzinfo is None
    }
    if errors:
        raise ValidationError(errors)


@dataclass(frozen=True)
class Witness:
    """A person vouching for the driver's side of a contest."""

    name: str
    contact: str | None = None
    statement: str | None = None

    def __post_init__(self) -> None:
        if not (self.name or "").strip():
            raise ValidationError({"witnesses.name": "witness name is required"})

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "contact": self.contact, "statement": self.statement}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Witness":
        return cls(
            name=data.get("name", ""),
            contact=data.get("contact"),
            statement=data.get("statement"),
        )
