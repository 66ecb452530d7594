"""Tests for checksum computation and validation."""

import hashlib
import hmac

import pytest

from plnstage.operations.checksum import (
    ChecksumValidator,
    compute_file_hash,
    normalize_algorithm,
)


class TestChecksums:
    """Test streaming digests."""

    def test_declared_names_map_to_hashlib(self):
        assert normalize_algorithm("SHA-1") == "sha1"
        assert normalize_algorithm("sha1") == "sha1"
        assert normalize_algorithm("MD5") == "md5"
        assert normalize_algorithm("SHA-256") == "sha256"
        assert normalize_algorithm("sha3_256") == "sha3_256"

    def test_unsupported_algorithm(self):
        with pytest.raises(ValueError, match="Unsupported checksum type"):
            normalize_algorithm("crc-1000")

    @pytest.mark.parametrize("name", ["shake_128", "SHAKE-256"])
    def test_variable_length_digests_are_rejected(self, name):
        with pytest.raises(ValueError, match="variable-length digest"):
            normalize_algorithm(name)

    def test_digest_matches_hashlib(self, tmp_path):
        path = tmp_path / "payload.bin"
        content = b"preservation" * 10_000
        path.write_bytes(content)

        assert compute_file_hash(path, "SHA-1") == hashlib.sha1(content).hexdigest()
        assert compute_file_hash(path, "md5") == hashlib.md5(content).hexdigest()

    def test_chunk_size_does_not_change_digest(self, tmp_path):
        path = tmp_path / "payload.bin"
        path.write_bytes(b"abcdefghij" * 1000)

        assert compute_file_hash(path, "sha1", chunk_size=7) == compute_file_hash(path, "sha1")

    def test_keyed_digest(self, tmp_path):
        path = tmp_path / "payload.bin"
        path.write_bytes(b"content")

        keyed = compute_file_hash(path, "SHA-1", key=b"secret")

        assert keyed == hmac.new(b"secret", b"content", "sha1").hexdigest()
        assert keyed != compute_file_hash(path, "SHA-1")


class TestChecksumValidator:
    """Test comparisons against declared values."""

    def test_match_ignores_case(self, tmp_path):
        path = tmp_path / "payload.bin"
        path.write_bytes(b"content")
        expected = hashlib.sha1(b"content").hexdigest().upper()

        result = ChecksumValidator().validate(path, "SHA-1", expected)

        assert result.matches
        assert result.actual == expected.lower()

    def test_mismatch(self, tmp_path):
        path = tmp_path / "payload.bin"
        path.write_bytes(b"content")

        assert not ChecksumValidator().validate(path, "SHA-1", "DEADBEEF").matches
