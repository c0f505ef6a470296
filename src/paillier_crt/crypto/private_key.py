import threading
import uuid
import weakref

import numpy as np
from gmpy2 import mpz, gcd, lcm
from phe import paillier

from paillier_crt import config
from paillier_crt.backend.modexp import ModExpEngine, make_engine
from paillier_crt.crypto.encrypted_batch import EncryptedBatch
from paillier_crt.crypto.exceptions import (
    BatchDecryptionError,
    KeyConsistencyError,
    NullKeyError,
    RangeError,
)
from paillier_crt.crypto.lfun import l_function, h_function, mod_inverse, crt_combine
from paillier_crt.util.batch import CiphertextBatch, PlaintextBatch
from paillier_crt.util.logger import get_logger

logger = get_logger(__name__)


class PaillierPrivateKey:
    """
    Paillier private key with both decryption paths precomputed.

    All derived constants are computed once, in the constructor, for the raw
    path (lambda and its multiplier modulo n) and for the CRT path (hp, hq and
    p^-1 mod q). The CRT flag only selects which set a decrypt call uses, so
    it can be toggled at any time without re-keying.

    The public key is a shared reference: the private key reads n, n^2 and g
    from it once and never modifies it. It must stay unchanged for as long
    as the private key is in use.
    """

    def __init__(
        self,
        public_key: paillier.PaillierPublicKey,
        p,
        q,
        enable_crt: bool = None,
        engine: ModExpEngine = None
    ):
        """
        Args:
            public_key (paillier.PaillierPublicKey): Public key holding n, n^2 and g.
            p (int or mpz): First secret prime.
            q (int or mpz): Second secret prime.
            enable_crt (bool): Initial algorithm choice (config.ENABLE_CRT_DEFAULT if None).
            engine (ModExpEngine): Exponentiation engine (built from config if None).

        Raises:
            NullKeyError: If public_key is None.
            KeyConsistencyError: If p * q != n, p == q, or g is not a unit mod p or q.
            NonInvertibleError: If a required modular inverse does not exist.
        """
        if public_key is None:
            raise NullKeyError("a private key needs an associated public key")

        n = mpz(public_key.n)
        p = mpz(p)
        q = mpz(q)
        if p == q:
            raise KeyConsistencyError("p and q must be different primes")
        if p * q != n:
            raise KeyConsistencyError("p * q does not match the public modulus n")

        self._public_key = public_key
        self._n = n
        self._nsquare = n * n
        self._g = mpz(public_key.g)
        self._p = p
        self._q = q

        self._pminusone = p - 1
        self._qminusone = q - 1
        self._psquare = p * p
        self._qsquare = q * q
        self._lambda = lcm(self._pminusone, self._qminusone)

        try:
            # Raw view
            self._x = h_function(self._g, self._lambda, n, self._nsquare)
            # CRT view
            self._hp = h_function(self._g, self._pminusone, p, self._psquare)
            self._hq = h_function(self._g, self._qminusone, q, self._qsquare)
        except RangeError as err:
            raise KeyConsistencyError(
                "generator g is not a unit modulo the key primes"
            ) from err
        self._pinverse = mod_inverse(p, q)

        self._bits = n.bit_length()
        self._dwords = -(-self._bits // config.DWORD_BITS)

        self._crt_lock = threading.Lock()
        self._enable_crt = config.ENABLE_CRT_DEFAULT if enable_crt is None else bool(enable_crt)
        owns_engine = engine is None
        self._engine = make_engine() if engine is None else engine
        # An engine built here is shut down with the key, even without close()
        self._finalizer = weakref.finalize(self, self._engine.close) if owns_engine else None

        self.key_id = uuid.uuid4().hex[:12]
        logger.info(
            f"Private key {self.key_id} ready: {self._bits}-bit modulus, "
            f"crt={self._enable_crt}, engine={self._engine.name}"
        )

    @classmethod
    def from_phe(cls, phe_private_key: paillier.PaillierPrivateKey, **kwargs) -> "PaillierPrivateKey":
        """Builds a key from a phe private key (its public key, p and q)."""
        return cls(phe_private_key.public_key, phe_private_key.p, phe_private_key.q, **kwargs)

    # --- Configuration ---

    def enable_crt(self, crt: bool):
        """Selects the CRT path (True) or the raw path (False) for later calls."""
        with self._crt_lock:
            self._enable_crt = bool(crt)
        logger.debug(f"Private key {self.key_id}: crt={bool(crt)}")

    @property
    def crt_enabled(self) -> bool:
        with self._crt_lock:
            return self._enable_crt

    # --- Accessors ---

    @property
    def public_key(self) -> paillier.PaillierPublicKey:
        return self._public_key

    @property
    def n(self):
        return self._n

    @property
    def p(self):
        return self._p

    @property
    def q(self):
        return self._q

    @property
    def lam(self):
        return self._lambda

    def get_lambda(self):
        """Lambda = lcm(p - 1, q - 1), exposed for ISO/IEC 18033-6 compliance checks."""
        return self._lambda

    @property
    def bits(self) -> int:
        return self._bits

    @property
    def dwords(self) -> int:
        return self._dwords

    @property
    def hp(self):
        return self._hp

    @property
    def hq(self):
        return self._hq

    @property
    def p_inverse(self):
        return self._pinverse

    @property
    def raw_multiplier(self):
        return self._x

    @property
    def engine(self) -> ModExpEngine:
        return self._engine

    def close(self):
        """Releases the exponentiation engine if this key created it."""
        if self._finalizer is not None:
            self._finalizer()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def __repr__(self):
        return (
            f"PaillierPrivateKey(key_id={self.key_id!r}, bits={self._bits}, "
            f"crt={self.crt_enabled})"
        )

    # --- Decryption ---

    def decrypt(self, ciphertext) -> PlaintextBatch:
        """
        Decrypts one batch of eight lanes with the currently selected algorithm.

        The CRT flag is read once, so every lane of the call goes through the
        same path. Lanes are independent: a lane that is out of range or not
        a unit modulo n is reported in the result's ``errors`` and left as
        None, while the other lanes are decrypted normally.

        Args:
            ciphertext: A CiphertextBatch, eight integers, an EncryptedBatch,
                or eight phe EncryptedNumber objects.

        Returns:
            PlaintextBatch: The eight plaintexts and any per-lane errors.
        """
        batch = self._as_batch(ciphertext)
        if self.crt_enabled:
            return self.decrypt_crt(batch)
        return self.decrypt_raw(batch)

    def decrypt_crt(self, ciphertext) -> PlaintextBatch:
        """
        CRT decryption of each lane:

            mp = L(c^(p-1) mod p^2, p) * hp mod p
            mq = L(c^(q-1) mod q^2, q) * hq mod q
            m  = mp + p * ((mq - mp) * p^-1 mod q)
        """
        batch = self._as_batch(ciphertext)
        lanes, errors = self._split_lanes(batch)
        values = [None] * config.BATCH_SIZE

        if lanes:
            k = len(lanes)
            cs = [c for _, c in lanes]
            xps = self._engine.powmod_batch(cs, [self._pminusone] * k, [self._psquare] * k)
            xqs = self._engine.powmod_batch(cs, [self._qminusone] * k, [self._qsquare] * k)
            for (lane, _), xp, xq in zip(lanes, xps, xqs):
                try:
                    mp = (l_function(xp, self._p) * self._hp) % self._p
                    mq = (l_function(xq, self._q) * self._hq) % self._q
                except RangeError as err:
                    errors[lane] = RangeError(str(err), lane)
                    continue
                values[lane] = crt_combine(mp, mq, self._p, self._q, self._pinverse)

        return self._finish(values, errors, "crt")

    def decrypt_raw(self, ciphertext) -> PlaintextBatch:
        """
        Direct decryption of each lane: m = L(c^lambda mod n^2, n) * x mod n.
        """
        batch = self._as_batch(ciphertext)
        lanes, errors = self._split_lanes(batch)
        values = [None] * config.BATCH_SIZE

        if lanes:
            k = len(lanes)
            cs = [c for _, c in lanes]
            xs = self._engine.powmod_batch(cs, [self._lambda] * k, [self._nsquare] * k)
            for (lane, _), x in zip(lanes, xs):
                try:
                    values[lane] = (l_function(x, self._n) * self._x) % self._n
                except RangeError as err:
                    errors[lane] = RangeError(str(err), lane)

        return self._finish(values, errors, "raw")

    def decrypt_array(self, ciphertexts) -> np.ndarray:
        """
        Decrypts an array of any shape, eight lanes at a time.

        The last group is padded with config.PADDING_CIPHERTEXT, whose result
        is discarded.

        Args:
            ciphertexts (np.ndarray or list): Raw ciphertexts or phe EncryptedNumbers.

        Returns:
            np.ndarray: Plaintexts (dtype=object) with the input's shape.

        Raises:
            BatchDecryptionError: If any element failed; ``errors`` is keyed by
                flat index and ``partial`` holds the reshaped partial result.
        """
        data = np.asarray(ciphertexts, dtype=object)
        flat = data.ravel()
        result = np.empty(flat.size, dtype=object)
        errors = {}

        for start in range(0, flat.size, config.BATCH_SIZE):
            chunk = [self._raw_ciphertext(v) for v in flat[start:start + config.BATCH_SIZE]]
            used = len(chunk)
            chunk += [config.PADDING_CIPHERTEXT] * (config.BATCH_SIZE - used)

            plaintexts = self.decrypt(CiphertextBatch(chunk))
            for lane in range(used):
                result[start + lane] = plaintexts[lane]
            for lane, err in plaintexts.errors.items():
                if lane < used:
                    errors[start + lane] = err

        result = result.reshape(data.shape)
        if errors:
            raise BatchDecryptionError(
                f"{len(errors)} of {flat.size} ciphertexts failed to decrypt "
                f"(flat indices {sorted(errors)})",
                errors,
                partial=result,
            )
        return result

    # --- Internals ---

    def _as_batch(self, ciphertext) -> CiphertextBatch:
        if isinstance(ciphertext, CiphertextBatch):
            return ciphertext
        if isinstance(ciphertext, EncryptedBatch):
            self._check_public_key(ciphertext.public_key)
            return ciphertext.to_ciphertexts()

        items = list(ciphertext)
        if items and all(isinstance(item, paillier.EncryptedNumber) for item in items):
            return self._as_batch(EncryptedBatch.from_encrypted_numbers(items))
        return CiphertextBatch(items)

    def _raw_ciphertext(self, value):
        if isinstance(value, paillier.EncryptedNumber):
            self._check_public_key(value.public_key)
            return value.ciphertext(be_secure=False)
        return value

    def _check_public_key(self, public_key):
        if public_key is None:
            raise NullKeyError("ciphertext is not associated with a public key")
        if mpz(public_key.n) != self._n:
            raise KeyConsistencyError(
                f"ciphertext was encrypted under a different public key (key {self.key_id})"
            )

    def _split_lanes(self, batch: CiphertextBatch):
        """Separates valid lanes (index, mpz) from lanes that cannot be decrypted."""
        lanes = []
        errors = {}
        for lane, c in enumerate(batch):
            c = mpz(c)
            if not 0 <= c < self._nsquare:
                errors[lane] = RangeError(f"lane {lane}: ciphertext outside [0, n^2)", lane)
            elif gcd(c, self._n) != 1:
                errors[lane] = RangeError(f"lane {lane}: ciphertext is not a unit modulo n", lane)
            else:
                lanes.append((lane, c))
        return lanes, errors

    def _finish(self, values, errors, path) -> PlaintextBatch:
        for lane, m in enumerate(values):
            if m is not None and not 0 <= m < self._n:
                errors[lane] = RangeError(f"lane {lane}: plaintext outside [0, n)", lane)
                values[lane] = None

        if errors:
            logger.warning(
                f"Private key {self.key_id}: {path} decryption failed on lanes {sorted(errors)}"
            )
        else:
            logger.debug(f"Private key {self.key_id}: {path} batch decrypted")
        return PlaintextBatch(values, errors)
