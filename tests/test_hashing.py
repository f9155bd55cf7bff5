"""Unit tests for auth/hashing.py -- tagged hashes, strategy registry, legacy detection.

Covers:
- hash_secret / verify_hash round trip and mismatch
- salt uniqueness across calls
- malformed input: bad field count, unknown tag, corrupt body
- legacy pbkdf2_sha256 hashes verify with is_legacy=True
- bcrypt's 72-byte limit
- registry extension with a custom strategy
"""

import pytest

from auth import hashing
from auth.errors import HashingError, MalformedHashError
from auth.hashing import Pbkdf2Sha256Hasher, hash_secret, is_tagged_hash, verify_hash


class TestHashSecret:
    def test_tagged_with_current_algorithm(self):
        assert hash_secret("s3cret").startswith("bcrypt:$2")

    def test_round_trip(self):
        for secret in ("s3cret", "", "pässwörd", "x" * 72):
            assert verify_hash(hash_secret(secret), secret) == (True, False)

    def test_wrong_secret_does_not_match(self):
        assert verify_hash(hash_secret("s3cret"), "S3cret") == (False, False)

    def test_salt_never_reused(self):
        hashes = {hash_secret("same secret") for _ in range(5)}
        assert len(hashes) == 5

    def test_secret_over_72_bytes_rejected(self):
        with pytest.raises(HashingError):
            hash_secret("x" * 73)

    def test_over_72_bytes_never_matches(self):
        tagged = hash_secret("x" * 72)
        assert verify_hash(tagged, "x" * 73) == (False, False)


class TestMalformed:
    @pytest.mark.parametrize(
        "tagged",
        [
            "",
            "no-colon-at-all",
            "bcrypt:a:b:c",
            "md5:5f4dcc3b5aa765d61d8327deb882cf99",
            "bcrypt:not-a-bcrypt-hash",
            "pbkdf2_sha256:not-a-number:abc$def",
            "pbkdf2_sha256:1000:%%%$%%%",
        ],
    )
    def test_raises_malformed(self, tagged):
        with pytest.raises(MalformedHashError):
            verify_hash(tagged, "whatever")

    def test_malformed_is_logged(self, caplog):
        with caplog.at_level("ERROR", logger="authn.hashing"):
            with pytest.raises(MalformedHashError):
                verify_hash("sha1:abc", "whatever")
        assert "unsupported algorithm tag" in caplog.text


class TestLegacy:
    def _legacy(self, secret: str) -> str:
        hasher = Pbkdf2Sha256Hasher(iterations=1000)
        return f"{hasher.tag}:{hasher.hash(secret)}"

    def test_legacy_match_flags_upgrade(self):
        assert verify_hash(self._legacy("old-password"), "old-password") == (True, True)

    def test_legacy_mismatch_is_plain_false(self):
        assert verify_hash(self._legacy("old-password"), "new-password") == (False, False)

    def test_legacy_hash_has_three_fields(self):
        assert len(self._legacy("pw").split(":")) == 3


class TestRegistry:
    def test_is_tagged_hash(self):
        assert is_tagged_hash(hash_secret("pw"))
        assert is_tagged_hash("pbkdf2_sha256:1:a$b")
        assert not is_tagged_hash("plaintext")
        assert not is_tagged_hash("sha1:abc")

    def test_custom_strategy_is_legacy_unless_current(self, monkeypatch):
        class ReversedHasher:
            tag = "reversed"

            def hash(self, secret):
                return secret[::-1]

            def verify(self, body, secret):
                return body == secret[::-1]

        monkeypatch.setitem(hashing._HASHERS, "reversed", ReversedHasher())
        assert verify_hash("reversed:drowssap", "password") == (True, True)
        assert hashing.current_tag() == "bcrypt"

    def test_dummy_hash_is_cached(self):
        assert hashing.dummy_hash() is hashing.dummy_hash()
