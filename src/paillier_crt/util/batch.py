import operator

import numpy as np

from paillier_crt import config
from paillier_crt.crypto.exceptions import BatchSizeError, BatchDecryptionError


class _LaneArray:
    """
    Fixed-length lane container backed by a 1-D numpy object array.

    Lanes are stored as Python ints so values of any size survive
    (numpy fixed-width dtypes would overflow).
    """

    def __init__(self, values):
        values = list(values)
        if len(values) != config.BATCH_SIZE:
            raise BatchSizeError(
                f"{type(self).__name__} needs exactly {config.BATCH_SIZE} lanes, "
                f"got {len(values)}"
            )
        self._lanes = np.empty(config.BATCH_SIZE, dtype=object)
        for i, v in enumerate(values):
            self._lanes[i] = self._convert(v)
        self._lanes.flags.writeable = False

    @staticmethod
    def _convert(value):
        return operator.index(value)

    def __len__(self):
        return config.BATCH_SIZE

    def __iter__(self):
        return iter(self._lanes)

    def __getitem__(self, lane):
        return self._lanes[lane]

    def __eq__(self, other):
        if not isinstance(other, _LaneArray):
            return NotImplemented
        return self.tolist() == other.tolist()

    __hash__ = None

    def tolist(self) -> list:
        return list(self._lanes)

    def as_array(self) -> np.ndarray:
        """Read-only view of the lanes."""
        return self._lanes


class CiphertextBatch(_LaneArray):
    """
    Eight raw ciphertext integers.

    Lanes are not range-checked here: an out-of-range lane is reported by
    the private key at decryption time, for that lane only.
    """

    def __repr__(self):
        return f"CiphertextBatch(lanes={config.BATCH_SIZE})"

    @classmethod
    def coerce(cls, ciphertexts) -> "CiphertextBatch":
        """Returns ciphertexts unchanged if already a batch, else wraps it."""
        if isinstance(ciphertexts, cls):
            return ciphertexts
        return cls(ciphertexts)


class PlaintextBatch(_LaneArray):
    """
    Eight decrypted lanes plus the per-lane errors.

    A failed lane holds None and has an entry in ``errors``.
    """

    def __init__(self, values, errors=None):
        self.errors = dict(errors or {})
        super().__init__(values)

    @staticmethod
    def _convert(value):
        if value is None:
            return None
        return int(value)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def failed_lanes(self) -> list:
        return sorted(self.errors)

    def raise_for_errors(self) -> "PlaintextBatch":
        """
        Raises BatchDecryptionError if any lane failed, otherwise returns self.
        """
        if self.errors:
            raise BatchDecryptionError(
                f"{len(self.errors)} of {config.BATCH_SIZE} lanes failed to decrypt "
                f"(lanes {self.failed_lanes})",
                self.errors,
                partial=self,
            )
        return self

    def __repr__(self):
        return f"PlaintextBatch(lanes={config.BATCH_SIZE}, failed={self.failed_lanes})"
