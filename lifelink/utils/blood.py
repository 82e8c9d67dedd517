BLOOD_TYPES: tuple[str, ...] = ("A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-")

# Donor type → recipient types it may safely supply (ABO/Rh red-cell rules).
# O- is the universal donor, AB+ the universal recipient.
COMPATIBILITY: dict[str, frozenset[str]] = {
    "O-": frozenset({"O-", "O+", "A-", "A+", "B-", "B+", "AB-", "AB+"}),
    "O+": frozenset({"O+", "A+", "B+", "AB+"}),
    "A-": frozenset({"A-", "A+", "AB-", "AB+"}),
    "A+": frozenset({"A+", "AB+"}),
    "B-": frozenset({"B-", "B+", "AB-", "AB+"}),
    "B+": frozenset({"B+", "AB+"}),
    "AB-": frozenset({"AB-", "AB+"}),
    "AB+": frozenset({"AB+"}),
}

_RH_SUFFIXES: dict[str, str] = {
    "positive": "+",
    "negative": "-",
    "pos": "+",
    "neg": "-",
    "+ve": "+",
    "-ve": "-",
    "+": "+",
    "-": "-",
}


def normalize_blood_type(raw: str | None) -> str | None:
    """Return the canonical spelling of *raw* (``"o pos"`` → ``"O+"``).

    Matching is case-insensitive and ignores whitespace.
    Returns ``None`` if the value is not one of the 8 ABO/Rh types.
    """
    if not raw:
        return None

    cleaned = "".join(str(raw).split()).lower()
    for suffix, sign in sorted(_RH_SUFFIXES.items(), key=lambda kv: len(kv[0]), reverse=True):
        if cleaned.endswith(suffix):
            candidate = cleaned[: -len(suffix)].upper() + sign
            return candidate if candidate in COMPATIBILITY else None
    return None


def is_compatible(donor_type: str | None, recipient_type: str | None) -> bool:
    if not donor_type or not recipient_type:
        return False
    return recipient_type in COMPATIBILITY.get(donor_type, frozenset())


def compatible_recipients(donor_type: str | None) -> frozenset[str]:
    return COMPATIBILITY.get(donor_type or "", frozenset())


def compatible_donors(recipient_type: str | None) -> frozenset[str]:
    """Inverse lookup: donor types that may supply *recipient_type*."""
    return frozenset(donor for donor, recipients in COMPATIBILITY.items() if recipient_type in recipients)
