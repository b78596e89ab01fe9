import hashlib

import pytest

from savings_gateway.signature import build_signature, encode_value, verify_signature

FIELDS = {
    "merchant_id": "10000100",
    "merchant_key": "46f0cd694581a",
    "return_url": "https://savings.example.com/payment/success",
    "m_payment_id": "pay_1",
    "amount": "100.00",
    "item_name": "Savings Deposit",
    "custom_str1": "user-1",
}


def test_signature_matches_hand_built_string():
    result = build_signature(FIELDS, "secret")

    expected_params = (
        "merchant_id=10000100&merchant_key=46f0cd694581a"
        "&return_url=https%3A%2F%2Fsavings.example.com%2Fpayment%2Fsuccess"
        "&m_payment_id=pay_1&amount=100.00&item_name=Savings+Deposit&custom_str1=user-1"
    )
    assert result.param_string == expected_params
    assert result.string_to_hash == expected_params + "&passphrase=secret"
    assert result.signature == hashlib.md5((expected_params + "&passphrase=secret").encode()).hexdigest()
    assert result.param_order == list(FIELDS)


def test_signature_is_lowercase_hex():
    signature = build_signature(FIELDS, "secret").signature

    assert len(signature) == 32
    assert signature == signature.lower()
    int(signature, 16)


def test_sign_then_verify_succeeds():
    signature = build_signature(FIELDS, "secret").signature

    assert verify_signature(FIELDS, signature, "secret")


@pytest.mark.parametrize("position", [0, 15, 31])
def test_single_character_mutation_fails(position):
    signature = build_signature(FIELDS, "secret").signature
    replacement = "0" if signature[position] != "0" else "1"
    mutated = signature[:position] + replacement + signature[position + 1:]

    assert not verify_signature(FIELDS, mutated, "secret")


def test_reordered_fields_fail():
    signature = build_signature(FIELDS, "secret").signature
    reordered = dict(reversed(list(FIELDS.items())))

    assert not verify_signature(reordered, signature, "secret")


def test_sorted_fields_fail():
    signature = build_signature(FIELDS, "secret").signature

    assert not verify_signature(dict(sorted(FIELDS.items())), signature, "secret")


def test_changed_secret_fails():
    signature = build_signature(FIELDS, "secret").signature

    assert not verify_signature(FIELDS, signature, "secret2")
    assert not verify_signature(FIELDS, signature, None)


def test_missing_received_signature_fails():
    assert not verify_signature(FIELDS, None, "secret")
    assert not verify_signature(FIELDS, "", "secret")


@pytest.mark.parametrize("passphrase", [None, "", "   "])
def test_no_passphrase_segment_without_secret(passphrase):
    result = build_signature(FIELDS, passphrase)

    assert "passphrase=" not in result.string_to_hash
    assert result.string_to_hash == result.param_string
    assert result.signature == hashlib.md5(result.param_string.encode()).hexdigest()


def test_passphrase_is_trimmed():
    assert build_signature(FIELDS, "  secret \n").signature == build_signature(FIELDS, "secret").signature


def test_formatted_amount_changes_digest():
    raw = build_signature({**FIELDS, "amount": "100"}, "secret").signature
    formatted = build_signature({**FIELDS, "amount": "100.00"}, "secret").signature

    assert raw != formatted


def test_empty_and_none_values_are_dropped():
    result = build_signature(
        [("merchant_id", "10000100"), ("name_first", ""), ("name_last", None), ("email", "  "), ("amount", "5.00")],
        "secret",
    )

    assert result.param_string == "merchant_id=10000100&amount=5.00"
    assert result.param_order == ["merchant_id", "amount"]


def test_values_are_trimmed_before_encoding():
    result = build_signature([("item_name", "  Savings Deposit  ")])

    assert result.param_string == "item_name=Savings+Deposit"


def test_pairs_and_mapping_sign_identically():
    assert build_signature(list(FIELDS.items()), "secret") == build_signature(FIELDS, "secret")


@pytest.mark.parametrize(
    "value, encoded",
    [
        ("Savings Deposit", "Savings+Deposit"),
        ("a/b?c=d&e", "a%2Fb%3Fc%3Dd%26e"),
        ("it's (ok)!*~", "it's+(ok)!*~"),
        ("user_1-2.3", "user_1-2.3"),
        ("R50+tip", "R50%2Btip"),
        ("café", "caf%C3%A9"),
    ],
)
def test_encode_value(value, encoded):
    assert encode_value(value) == encoded
