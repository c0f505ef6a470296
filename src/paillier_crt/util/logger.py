"""Logging helpers for paillier_crt modules."""

import logging

PACKAGE_LOGGER = "paillier_crt"

# Library default: stay silent until the application configures logging.
logging.getLogger(PACKAGE_LOGGER).addHandler(logging.NullHandler())


def get_logger(name: str) -> logging.Logger:
    """Module logger under the ``paillier_crt`` hierarchy.

    No level is set here, so whatever the application configures later
    (basicConfig, dictConfig, a level on "paillier_crt") applies.

    Args:
        name: Logger name (typically __name__)
    """
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)
