import pytest

from creatorhub.core.security import canonical_json, create_signature, verify_signature

PAYLOAD = {"blobId": "42", "userWallet": "0xabc", "issuedAt": 1, "expiry": 2, "nonce": 7}


def test_verify_signature_rejects_bad_inputs() -> None:
    """Ensure verify_signature returns False when given invalid hex inputs."""
    assert verify_signature(PAYLOAD, "zz", "secret") is False
    assert verify_signature(PAYLOAD, "aa", "secret") is False
    assert verify_signature(PAYLOAD, "", "secret") is False


def test_signature_round_trip() -> None:
    signature = create_signature(PAYLOAD, "secret")
    assert len(signature) == 64
    assert verify_signature(PAYLOAD, signature, "secret") is True


def test_signature_depends_on_secret_and_payload() -> None:
    signature = create_signature(PAYLOAD, "secret")
    assert verify_signature(PAYLOAD, signature, "other-secret") is False
    assert verify_signature({**PAYLOAD, "nonce": 8}, signature, "secret") is False


def test_canonical_json_keeps_field_order() -> None:
    assert canonical_json({"b": 1, "a": "x"}) == b'{"b":1,"a":"x"}'
    reordered = {"nonce": 7, **{k: v for k, v in PAYLOAD.items() if k != "nonce"}}
    assert create_signature(reordered, "secret") != create_signature(PAYLOAD, "secret")


def _flip_last_hex_bit(signature: str) -> str:
    return signature[:-1] + format(int(signature[-1], 16) ^ 1, "x")


def test_single_bit_flip_in_signature_is_rejected() -> None:
    signature = create_signature(PAYLOAD, "secret")

    assert verify_signature(PAYLOAD, _flip_last_hex_bit(signature), "secret") is False


@pytest.mark.parametrize(
    "tampered",
    [
        {**PAYLOAD, "expiry": PAYLOAD["expiry"] ^ 1},
        {**PAYLOAD, "issuedAt": PAYLOAD["issuedAt"] ^ 1},
        {**PAYLOAD, "blobId": "43"},
        {**PAYLOAD, "userWallet": "0xabb"},
    ],
)
def test_single_bit_flip_in_payload_is_rejected(tampered) -> None:
    signature = create_signature(PAYLOAD, "secret")

    assert verify_signature(tampered, signature, "secret") is False
