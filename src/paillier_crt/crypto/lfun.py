from gmpy2 import mpz, powmod, invert, divexact

from paillier_crt.crypto.exceptions import NonInvertibleError, RangeError


def l_function(a, n):
    """
    Paillier L-function: L(a, n) = (a - 1) / n, exact integer division.

    Only defined when a = 1 (mod n), which holds for every element of the
    form (1 + n)^k mod n^2.

    Args:
        a (mpz): Group element, already reduced modulo n^2 (or p^2 / q^2).
        n (mpz): The modulus the element was raised over.

    Returns:
        mpz: (a - 1) / n.

    Raises:
        RangeError: If a - 1 is not divisible by n.
    """
    a = mpz(a)
    n = mpz(n)
    if (a - 1) % n != 0:
        raise RangeError("L-function input is not congruent to 1 modulo n")
    return divexact(a - 1, n)


def mod_inverse(value, modulus):
    """
    Modular inverse through gmpy2, re-raised as NonInvertibleError.
    """
    try:
        return invert(value, modulus)
    except ZeroDivisionError as err:
        raise NonInvertibleError(
            f"no inverse exists modulo a {mpz(modulus).bit_length()}-bit modulus"
        ) from err


def h_function(g, exponent, modulus, modulus_square):
    """
    Computes H = L(g^exponent mod modulus_square, modulus)^-1 mod modulus.

    The raw path calls it with (lambda, n, n^2) and the CRT path with
    (p - 1, p, p^2) and (q - 1, q, q^2).

    Args:
        g (mpz): Public generator.
        exponent (mpz): Exponent applied to g.
        modulus (mpz): n, p or q.
        modulus_square (mpz): Square of modulus.

    Returns:
        mpz: The precomputed multiplier for the given modulus.
    """
    lvalue = l_function(powmod(g, exponent, modulus_square), modulus)
    return mod_inverse(lvalue, modulus)


def crt_combine(mp, mq, p, q, p_inverse):
    """
    Garner recombination of residues mp (mod p) and mq (mod q).

    Returns the unique m in [0, p*q) with m = mp (mod p) and m = mq (mod q),
    using p_inverse = p^-1 mod q.
    """
    u = ((mq - mp) * p_inverse) % q
    return mp + u * p
