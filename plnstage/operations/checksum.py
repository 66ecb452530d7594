"""Streaming checksum computation and comparison."""

import hashlib
import hmac
from pathlib import Path

from pydantic import BaseModel


def normalize_algorithm(name: str) -> str:
    """Map a declared checksum type ("SHA-1", "md5") to a hashlib name.

    Raises:
        ValueError: If hashlib does not support the algorithm or it has no
            fixed digest length
    """
    lowered = name.strip().lower()
    for candidate in (lowered, lowered.replace("-", ""), lowered.replace("-", "_")):
        if candidate in hashlib.algorithms_available:
            if hashlib.new(candidate).digest_size == 0:
                raise ValueError(f"Unsupported checksum type {name}: variable-length digest")
            return candidate
    raise ValueError(f"Unsupported checksum type {name}")


def compute_file_hash(
    file_path: Path,
    algorithm: str = "sha1",
    key: bytes | None = None,
    chunk_size: int = 64 * 1024,
) -> str:
    """Compute the hex digest of a file without loading it into memory.

    Args:
        file_path: Path to the file
        algorithm: Declared checksum type, e.g. "SHA-1"
        key: Optional key; when given an HMAC is computed instead of a plain digest
        chunk_size: Size of chunks to read (default 64KB)

    Returns:
        Lower-case hexadecimal digest
    """
    name = normalize_algorithm(algorithm)
    digest = hmac.new(key, digestmod=name) if key is not None else hashlib.new(name)
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


class ChecksumResult(BaseModel):
    """Outcome of comparing a file against a declared checksum."""

    algorithm: str
    expected: str
    actual: str

    @property
    def matches(self) -> bool:
        """Return True when digests are equal, ignoring case."""
        return self.expected.strip().lower() == self.actual.lower()


class ChecksumValidator:
    """Compare harvested files to the checksum their provider declared."""

    def __init__(self, key: bytes | None = None, chunk_size: int = 64 * 1024):
        self.key = key
        self.chunk_size = chunk_size

    def validate(self, file_path: Path, algorithm: str, expected: str) -> ChecksumResult:
        """Digest ``file_path`` and compare it with ``expected``."""
        actual = compute_file_hash(file_path, algorithm, key=self.key, chunk_size=self.chunk_size)
        return ChecksumResult(algorithm=algorithm, expected=expected, actual=actual)
