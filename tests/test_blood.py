import pytest

from lifelink.utils.blood import (
    BLOOD_TYPES,
    compatible_donors,
    compatible_recipients,
    is_compatible,
    normalize_blood_type,
)

# Recipient → donor types it may receive from, written from the recipient's side
RECEIVES_FROM = {
    "A+": {"A+", "A-", "O+", "O-"},
    "O+": {"O+", "O-"},
    "B+": {"B+", "B-", "O+", "O-"},
    "AB+": set(BLOOD_TYPES),
    "A-": {"A-", "O-"},
    "O-": {"O-"},
    "B-": {"B-", "O-"},
    "AB-": {"AB-", "A-", "B-", "O-"},
}


@pytest.mark.parametrize("donor", BLOOD_TYPES)
@pytest.mark.parametrize("recipient", BLOOD_TYPES)
def test_matrix_matches_transfusion_table(donor, recipient):
    assert is_compatible(donor, recipient) == (donor in RECEIVES_FROM[recipient])


def test_universal_donor_and_recipient():
    assert compatible_recipients("O-") == frozenset(BLOOD_TYPES)
    assert compatible_recipients("AB+") == frozenset({"AB+"})
    assert compatible_donors("AB+") == frozenset(BLOOD_TYPES)
    assert compatible_donors("O-") == frozenset({"O-"})


@pytest.mark.parametrize("donor, recipient", [(None, "O+"), ("O+", None), ("C+", "O+"), ("O-", "Z"), ("", "")])
def test_unknown_types_are_never_compatible(donor, recipient):
    assert is_compatible(donor, recipient) is False


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("O+", "O+"),
        ("ab-", "AB-"),
        (" o pos ", "O+"),
        ("A+ve", "A+"),
        ("B negative", "B-"),
        ("abneg", "AB-"),
        ("C+", None),
        ("+", None),
        ("", None),
        (None, None),
    ],
)
def test_normalize_blood_type(raw, expected):
    assert normalize_blood_type(raw) == expected
