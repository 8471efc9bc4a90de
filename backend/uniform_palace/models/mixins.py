from __future__ import annotations

from ..extensions import db


def join_address_parts(*parts) -> str:
    """Non-empty address components joined by comma."""
    return ", ".join(str(p).strip() for p in parts if p is not None and str(p).strip())


class AddressMixin:
    """Flat postal address columns shared by customers and inquiries."""

    street = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(128), nullable=True)
    state = db.Column(db.String(128), nullable=True)
    pincode = db.Column(db.String(16), nullable=True)
    country = db.Column(db.String(64), nullable=True, default="India")

    ADDRESS_FIELDS = ("street", "city", "state", "pincode", "country")

    @property
    def full_address(self) -> str:
        return join_address_parts(self.street, self.city, self.state, self.pincode, self.country)

    def address_dict(self) -> dict:
        return {f: getattr(self, f) for f in self.ADDRESS_FIELDS}
