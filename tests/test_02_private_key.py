import unittest
from types import SimpleNamespace

from gmpy2 import mpz, invert
from phe import paillier

from paillier_crt.crypto.exceptions import (
    KeyConsistencyError,
    NonInvertibleError,
    NullKeyError,
)
from paillier_crt.crypto.private_key import PaillierPrivateKey


class TestPrivateKeyConstruction(unittest.TestCase):
    """
    Tests key precomputation, validation and accessors.
    """

    P = 61
    Q = 53
    N = 3233

    @classmethod
    def setUpClass(cls):
        cls.public_key = paillier.PaillierPublicKey(cls.N)
        cls.key = PaillierPrivateKey(cls.public_key, cls.P, cls.Q, enable_crt=True)

    def test_01_accessors(self):
        print("[Test PrivateKey] Running: test_01_accessors")
        self.assertEqual(self.key.n, self.N)
        self.assertEqual(self.key.p, self.P)
        self.assertEqual(self.key.q, self.Q)
        self.assertEqual(self.key.lam, 780)
        self.assertEqual(self.key.get_lambda(), self.key.lam)
        self.assertEqual(self.key.bits, 12)
        self.assertEqual(self.key.dwords, 1)
        self.assertIs(self.key.public_key, self.public_key)

    def test_02_precomputed_constants(self):
        print("[Test PrivateKey] Running: test_02_precomputed_constants")
        p, q, n = mpz(self.P), mpz(self.Q), mpz(self.N)
        self.assertEqual(self.key.p_inverse, invert(p, q))
        self.assertEqual(self.key.hp, invert(((p - 1) * q) % p, p))
        self.assertEqual(self.key.hq, invert(((q - 1) * p) % q, q))
        self.assertEqual(self.key.raw_multiplier, invert(mpz(780), n))

    def test_03_identical_inputs_identical_constants(self):
        print("[Test PrivateKey] Running: test_03_identical_inputs_identical_constants")
        other = PaillierPrivateKey(self.public_key, self.P, self.Q)
        for name in ("hp", "hq", "lam", "p_inverse", "raw_multiplier", "bits"):
            self.assertEqual(getattr(other, name), getattr(self.key, name), name)
        self.assertNotEqual(other.key_id, self.key.key_id)

    def test_04_modulus_mismatch(self):
        print("[Test PrivateKey] Running: test_04_modulus_mismatch")
        with self.assertRaises(KeyConsistencyError):
            PaillierPrivateKey(self.public_key, self.P, 59)
        with self.assertRaises(ValueError):
            PaillierPrivateKey(self.public_key, 1, self.N - 1)

    def test_05_equal_primes(self):
        print("[Test PrivateKey] Running: test_05_equal_primes")
        with self.assertRaises(KeyConsistencyError):
            PaillierPrivateKey(paillier.PaillierPublicKey(61 * 61), 61, 61)

    def test_06_missing_public_key(self):
        print("[Test PrivateKey] Running: test_06_missing_public_key")
        with self.assertRaises(NullKeyError):
            PaillierPrivateKey(None, self.P, self.Q)

    def test_07_bad_generator(self):
        print("[Test PrivateKey] Running: test_07_bad_generator")
        n = self.N
        # g shares the factor p with n
        not_a_unit = SimpleNamespace(n=n, nsquare=n * n, g=2 * self.P)
        with self.assertRaises(KeyConsistencyError):
            PaillierPrivateKey(not_a_unit, self.P, self.Q)
        # g = 1 gives L = 0, which has no inverse
        trivial = SimpleNamespace(n=n, nsquare=n * n, g=1)
        with self.assertRaises(NonInvertibleError):
            PaillierPrivateKey(trivial, self.P, self.Q)

    def test_08_crt_flag(self):
        print("[Test PrivateKey] Running: test_08_crt_flag")
        key = PaillierPrivateKey(self.public_key, self.P, self.Q, enable_crt=False)
        self.assertFalse(key.crt_enabled)
        hp_before = key.hp
        key.enable_crt(True)
        self.assertTrue(key.crt_enabled)
        self.assertEqual(key.hp, hp_before)


class TestPrivateKeyFromPhe(unittest.TestCase):
    """
    Tests building the key from a phe-generated key pair.
    """

    @classmethod
    def setUpClass(cls):
        print("\n[Test PrivateKey] Generating PHE Paillier keys (1024-bit)...")
        cls.public_key, cls.phe_private_key = paillier.generate_paillier_keypair(n_length=1024)

    def test_01_from_phe(self):
        print("[Test PrivateKey] Running: test_01_from_phe")
        key = PaillierPrivateKey.from_phe(self.phe_private_key, enable_crt=False)
        self.assertEqual(key.n, self.public_key.n)
        self.assertEqual(key.p * key.q, key.n)
        self.assertEqual(key.bits, 1024)
        self.assertEqual(key.dwords, 32)
        self.assertFalse(key.crt_enabled)
        # phe precomputes the same CRT constants
        self.assertEqual(key.hp, self.phe_private_key.hp)
        self.assertEqual(key.hq, self.phe_private_key.hq)

    def test_02_repr_hides_secrets(self):
        print("[Test PrivateKey] Running: test_02_repr_hides_secrets")
        key = PaillierPrivateKey.from_phe(self.phe_private_key)
        text = repr(key)
        self.assertIn(key.key_id, text)
        self.assertNotIn(str(self.phe_private_key.p), text)
        self.assertNotIn(str(self.phe_private_key.q), text)


if __name__ == "__main__":
    unittest.main()
