"""
Exceptions raised by the Paillier decryption core.

Every error derives from PaillierError and from the builtin exception a
caller would naturally catch for the same condition (ValueError for bad
inputs, ZeroDivisionError for a missing modular inverse).
"""
from typing import Dict, Optional, Any


class PaillierError(Exception):
    """Base exception for all decryption-core errors."""

    def __init__(self, message: str, lane: Optional[int] = None) -> None:
        """
        Args:
            message: Error message
            lane: Batch lane the error belongs to (if any)
        """
        self.lane = lane
        super().__init__(message)


class KeyConsistencyError(PaillierError, ValueError):
    """p * q does not match the public modulus, or p == q."""
    pass


class NonInvertibleError(PaillierError, ZeroDivisionError):
    """A modular inverse required by the key does not exist."""
    pass


class RangeError(PaillierError, ValueError):
    """A ciphertext or plaintext lane lies outside its valid range."""
    pass


class NullKeyError(PaillierError, TypeError):
    """Decryption attempted without an associated public key."""
    pass


class BatchSizeError(PaillierError, ValueError):
    """A batch was built with the wrong number of lanes."""
    pass


class BatchDecryptionError(RangeError):
    """
    One or more lanes of a batch failed to decrypt.

    The lanes that succeeded are still available through ``partial``.
    """

    def __init__(
        self,
        message: str,
        errors: Dict[int, RangeError],
        partial: Any = None
    ) -> None:
        """
        Args:
            message: Error message
            errors: Mapping lane index -> error for that lane
            partial: The PlaintextBatch holding the successful lanes
        """
        self.errors = dict(errors)
        self.partial = partial
        lane = min(self.errors) if self.errors else None
        super().__init__(message, lane)
