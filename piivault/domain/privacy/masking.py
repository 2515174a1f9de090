"""Display masking for decrypted values.

Pure and total: malformed input degrades to a placeholder instead of
raising. Masked values are for rendering only; never store them or use
them for lookups.
"""

MASK = "***"
PHONE_MASK = "******"


def mask_name(name: str) -> str:
    """John -> J***"""
    if not isinstance(name, str):
        return MASK
    name = name.strip()
    if not name:
        return MASK
    return name[0] + MASK


def mask_phone(phone: str) -> str:
    """+628123456789 -> ******6789"""
    if not isinstance(phone, str) or len(phone) < 4:
        return PHONE_MASK
    return PHONE_MASK + phone[-4:]


def mask_email(email: str) -> str:
    """user@example.com -> u***@example.com"""
    if not isinstance(email, str) or "@" not in email:
        return MASK
    local, _, domain = email.rpartition("@")
    if not local:
        return f"{MASK}@{domain}"
    return f"{local[0]}{MASK}@{domain}"
