"""Credential vault: AES-256-GCM envelopes"""
import pytest

from sarvasync.errors import ConfigurationError, FormatError, IntegrityError
from sarvasync.infrastructure.vault import CredentialVault

KEY = "0123456789abcdef" * 4
OTHER_KEY = "fedcba9876543210" * 4


@pytest.fixture
def box():
    return CredentialVault(KEY)


def test_round_trip(box):
    secret = "ya29.a0AfH6SMBx-access-token"
    envelope = box.encrypt(secret)
    assert secret not in envelope
    assert box.decrypt(envelope) == secret


def test_round_trip_unicode_and_empty(box):
    assert box.decrypt(box.encrypt("tøken ✓")) == "tøken ✓"
    assert box.decrypt(box.encrypt("")) == ""


def test_envelope_shape(box):
    iv, tag, ciphertext = box.encrypt("abc").split(":")
    assert len(iv) == 32
    assert len(tag) == 32
    assert len(ciphertext) == 6


def test_fresh_iv_per_encryption(box):
    first, second = box.encrypt("same"), box.encrypt("same")
    assert first != second
    assert first.split(":")[0] != second.split(":")[0]


def test_tampered_ciphertext_fails_integrity(box):
    iv, tag, ciphertext = box.encrypt("refresh-token").split(":")
    flipped = format(int(ciphertext[0], 16) ^ 1, "x") + ciphertext[1:]
    with pytest.raises(IntegrityError):
        box.decrypt(":".join((iv, tag, flipped)))


def test_tampered_tag_fails_integrity(box):
    iv, tag, ciphertext = box.encrypt("refresh-token").split(":")
    flipped = format(int(tag[-1], 16) ^ 1, "x")
    with pytest.raises(IntegrityError):
        box.decrypt(":".join((iv, tag[:-1] + flipped, ciphertext)))


def test_wrong_key_fails_integrity(box):
    with pytest.raises(IntegrityError):
        CredentialVault(OTHER_KEY).decrypt(box.encrypt("secret"))


@pytest.mark.parametrize("envelope", [
    "",
    "no-delimiters",
    "aa:bb",
    "a:b:c:d",
    ":" + "00" * 16 + ":00",
    "zz" * 16 + ":" + "00" * 16 + ":00",
    "00" * 8 + ":" + "00" * 16 + ":00",
])
def test_malformed_envelope(box, envelope):
    with pytest.raises(FormatError):
        box.decrypt(envelope)


@pytest.mark.parametrize("key", ["", "abc", "zz" * 32, KEY + "00"])
def test_bad_key_is_configuration_error(key):
    with pytest.raises(ConfigurationError):
        CredentialVault(key)
