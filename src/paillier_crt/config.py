import os

# --- Batch geometry ---

# Number of independent lanes decrypted together
BATCH_SIZE = 8

# Word size used to derive the buffer word count from the key bit length
DWORD_BITS = 32

# Ciphertext used to fill unused lanes of the last batch (1 = E(0) with r=1)
PADDING_CIPHERTEXT = 1


# --- Runtime defaults (overridable by constructor arguments) ---

def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() not in ("0", "false", "no", "off", "")


# Decrypt with the CRT path unless the key is told otherwise
ENABLE_CRT_DEFAULT = _env_flag("PAILLIER_CRT_ENABLE", True)

# Worker threads for lane-parallel modular exponentiation (0 or 1 = sequential)
MODEXP_WORKERS = int(os.environ.get("PAILLIER_CRT_WORKERS", "0"))
