"""ULID helpers."""

import ulid

REFERENCE_LENGTH = 6


def generate_ulid() -> str:
    """Return a string ULID for primary keys."""
    return str(ulid.new())


def booking_reference(appointment_id: str) -> str:
    """Short customer-facing reference, e.g. ``APT-7QK2ZD``.

    Uses the random tail of the ULID so references of bookings made in the
    same millisecond still differ.
    """
    return f"APT-{appointment_id[-REFERENCE_LENGTH:].upper()}"
