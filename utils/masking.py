"""Redaction helpers for log lines."""


def mask_phone(phone: str | None) -> str:
    """Keep the last four digits of a phone number, mask the rest."""
    if not phone:
        return "<none>"
    if len(phone) <= 4:
        return "*" * len(phone)
    return "*" * (len(phone) - 4) + phone[-4:]
