"""
Password hashing, token digests and random token values.
"""

import secrets

import pytest

from formauth.core.exceptions import ErrorKind, WebAuthError
from formauth.core.security import PasswordHasher, digest_token, random_urlsafe


@pytest.fixture(scope="module")
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


def test_hash_verifies_only_original_password(hasher: PasswordHasher):
    verifier = hasher.hash("correct horse")

    assert verifier != "correct horse"
    assert verifier.startswith("$2")
    assert hasher.verify(verifier, "correct horse")
    assert not hasher.verify(verifier, "correct horse ")
    assert not hasher.verify(verifier, "")


def test_hash_is_salted(hasher: PasswordHasher):
    assert hasher.hash("pw") != hasher.hash("pw")


def test_verifier_is_self_describing():
    verifier = PasswordHasher(rounds=5).hash("pw")
    # Verification needs no knowledge of the cost used to hash
    assert PasswordHasher(rounds=4).verify(verifier, "pw")
    assert "$05$" in verifier


def test_malformed_verifier_never_matches(hasher: PasswordHasher):
    assert not hasher.verify("not-a-hash", "pw")


def test_dummy_verify_runs(hasher: PasswordHasher):
    hasher.dummy_verify()


def test_overlong_password_is_validation_error(hasher: PasswordHasher):
    with pytest.raises(WebAuthError) as excinfo:
        hasher.hash("x" * 5000)
    assert excinfo.value.kind is ErrorKind.VALIDATION

    assert not hasher.verify(hasher.hash("pw"), "x" * 5000)


def test_digest_token_is_sha256_hex():
    assert digest_token("abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
    assert digest_token("abc") == digest_token("abc")
    assert len(digest_token("anything")) == 64


@pytest.mark.parametrize("n_bytes, length", [(0, 0), (12, 16), (16, 22), (32, 43)])
def test_random_urlsafe_length(n_bytes: int, length: int):
    value = random_urlsafe(n_bytes)
    assert len(value) == length
    assert all(c.isalnum() or c in "-_" for c in value)


def test_random_urlsafe_values_differ():
    assert random_urlsafe(32) != random_urlsafe(32)


def test_random_urlsafe_negative_length():
    with pytest.raises(WebAuthError) as excinfo:
        random_urlsafe(-1)
    assert excinfo.value.kind is ErrorKind.INVALID_LENGTH


def test_random_urlsafe_rng_failure(monkeypatch: pytest.MonkeyPatch):
    def broken(_n: int) -> str:
        raise OSError("no entropy")

    monkeypatch.setattr(secrets, "token_urlsafe", broken)

    with pytest.raises(WebAuthError) as excinfo:
        random_urlsafe(12)
    assert excinfo.value.kind is ErrorKind.RNG_FAILURE
