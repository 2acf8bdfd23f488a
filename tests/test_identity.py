"""Tests for identity and key normalization."""

import pytest
from eth_account import Account

from stipend.identity import display_address, normalize_identity, normalize_private_key


def test_private_key_forms_agree():
    acct = Account.create()
    expected = "0x" + bytes(acct.key).hex()

    assert normalize_private_key(acct.key) == expected
    assert normalize_private_key(expected[2:]) == expected
    assert normalize_private_key("  " + expected.upper().replace("0X", "0x") + "\n") == expected


@pytest.mark.parametrize("value", ["", "0x1234", "zz" * 32, b"\x01" * 31])
def test_private_key_rejects_malformed(value):
    with pytest.raises(ValueError):
        normalize_private_key(value)


def test_identity_accepts_address_in_any_case():
    acct = Account.create()
    assert normalize_identity(acct.address.upper().replace("0X", "0x")) == acct.address.lower()
    assert display_address(acct.address.lower()) == acct.address
