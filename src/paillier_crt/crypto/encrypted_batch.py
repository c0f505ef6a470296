from phe import paillier

from paillier_crt import config
from paillier_crt.crypto.exceptions import BatchSizeError, NullKeyError
from paillier_crt.util.batch import CiphertextBatch


class EncryptedBatch:
    """
    Eight encrypted values bound to the public key that produced them.

    This is the bridge between phe's EncryptedNumber objects (one ciphertext
    plus an encoding exponent each) and the raw eight-lane ciphertext batches
    the private key works on. The exponent metadata travels along untouched;
    decoding is left to the caller.
    """

    def __init__(self, public_key: paillier.PaillierPublicKey, ciphertexts, exponents=None):
        """
        Args:
            public_key (paillier.PaillierPublicKey): Key the values were encrypted under.
            ciphertexts (iterable): Eight raw ciphertext integers.
            exponents (iterable): Eight encoding exponents (defaults to all 0).
        """
        if public_key is None:
            raise NullKeyError("EncryptedBatch requires a public key")
        self.public_key = public_key
        self._ciphertexts = CiphertextBatch(ciphertexts)

        exponents = [0] * config.BATCH_SIZE if exponents is None else [int(e) for e in exponents]
        if len(exponents) != config.BATCH_SIZE:
            raise BatchSizeError(
                f"EncryptedBatch needs {config.BATCH_SIZE} exponents, got {len(exponents)}"
            )
        self.exponents = tuple(exponents)

    @classmethod
    def from_encrypted_numbers(cls, numbers) -> "EncryptedBatch":
        """
        Packs eight phe EncryptedNumber objects sharing one public key.
        """
        numbers = list(numbers)
        if len(numbers) != config.BATCH_SIZE:
            raise BatchSizeError(
                f"expected {config.BATCH_SIZE} encrypted numbers, got {len(numbers)}"
            )
        public_key = numbers[0].public_key
        if public_key is None:
            raise NullKeyError("encrypted number has no public key")
        for i, number in enumerate(numbers):
            if number.public_key != public_key:
                raise ValueError(
                    f"lane {i} was encrypted under a different public key"
                )
        return cls(
            public_key,
            [number.ciphertext(be_secure=False) for number in numbers],
            [number.exponent for number in numbers],
        )

    def to_ciphertexts(self) -> CiphertextBatch:
        """Exactly eight raw ciphertext integers."""
        return self._ciphertexts

    def __len__(self):
        return config.BATCH_SIZE

    def __repr__(self):
        return f"EncryptedBatch(n_bits={self.public_key.n.bit_length()}, exponents={self.exponents})"
