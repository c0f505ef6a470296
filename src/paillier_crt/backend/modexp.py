"""
Modular-exponentiation engines.

The decryption core never calls powmod directly for ciphertext lanes: it
sends one request of up to eight (base, exponent, modulus) triples to an
engine and gets the results back in the same order. This is the narrow
synchronous interface an accelerator offload would implement.
"""
from concurrent.futures import ThreadPoolExecutor

from gmpy2 import context, get_context, powmod

from paillier_crt import config
from paillier_crt.util.logger import get_logger

logger = get_logger(__name__)


class ModExpEngine:
    """Base engine: one lane at a time."""

    name = "base"

    def powmod(self, base, exponent, modulus):
        return powmod(base, exponent, modulus)

    def powmod_batch(self, bases, exponents, moduli):
        """
        Computes bases[i]^exponents[i] mod moduli[i] for every lane.

        Args:
            bases (list): Lane bases.
            exponents (list): Lane exponents.
            moduli (list): Lane moduli.

        Returns:
            list: Results in lane order.
        """
        bases, exponents, moduli = _check_lanes(bases, exponents, moduli)
        return [self.powmod(b, e, m) for b, e, m in zip(bases, exponents, moduli)]

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class GmpyModExp(ModExpEngine):
    """Sequential gmpy2 powmod, lane after lane."""

    name = "gmpy2"


class ThreadedModExp(ModExpEngine):
    """
    Lane-parallel engine.

    Each lane runs under a gmpy2 context with allow_release_gil set, so
    powmod drops the GIL and the pool threads exponentiate concurrently.
    Lanes only read their own inputs and each result lands in its own slot,
    so no locking is involved.
    """

    name = "threaded"

    def __init__(self, workers: int = config.BATCH_SIZE):
        if workers < 1:
            raise ValueError("workers must be positive")
        self.workers = workers
        self._executor = ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="paillier-modexp"
        )
        logger.debug(f"ThreadedModExp started with {workers} workers")

    @staticmethod
    def lane_context():
        """Copy of the calling thread's gmpy2 context that releases the GIL."""
        return context(get_context(), allow_release_gil=True)

    def _run_lane(self, base, exponent, modulus):
        with self.lane_context():
            return self.powmod(base, exponent, modulus)

    def powmod_batch(self, bases, exponents, moduli):
        bases, exponents, moduli = _check_lanes(bases, exponents, moduli)
        return list(self._executor.map(self._run_lane, bases, exponents, moduli))

    def close(self):
        self._executor.shutdown(wait=True)


def make_engine(workers: int = None) -> ModExpEngine:
    """
    Picks an engine for the given worker count (config.MODEXP_WORKERS when None).
    """
    if workers is None:
        workers = config.MODEXP_WORKERS
    if workers <= 1:
        return GmpyModExp()
    return ThreadedModExp(workers)


def _check_lanes(bases, exponents, moduli):
    bases, exponents, moduli = list(bases), list(exponents), list(moduli)
    if not (len(bases) == len(exponents) == len(moduli)):
        raise ValueError(
            f"lane count mismatch: {len(bases)} bases, "
            f"{len(exponents)} exponents, {len(moduli)} moduli"
        )
    return bases, exponents, moduli
