"""Car key validation.

Keys look like ``CAR<N>`` with N in 0..9999 and no leading zeros. The checks
run one rule at a time rather than as a single regex so the failure names the
rule that was broken.
"""

from __future__ import annotations

from carledger.errors import InvalidKey

KEY_PREFIX = "CAR"
MAX_SUFFIX_LEN = 4
MIN_KEY = "CAR0"
MAX_KEY = "CAR9999"

# ':' sorts directly after '9', so [RANGE_START, RANGE_END) covers every valid key
RANGE_START = MIN_KEY
RANGE_END = KEY_PREFIX + ":"


def verify_key(key: str) -> None:
    """Raise ``InvalidKey`` unless ``key`` is a well-formed car key."""
    if not key:
        raise InvalidKey(key, "empty", "The car ID must not be empty.")

    if key != key.strip():
        raise InvalidKey(key, "whitespace", f"The car ID {key} must not have leading or trailing whitespace.")

    if not key.startswith(KEY_PREFIX):
        raise InvalidKey(key, "prefix", f"The car ID {key} must start with '{KEY_PREFIX}'.")

    suffix = key[len(KEY_PREFIX):]
    if not suffix:
        raise InvalidKey(key, "too_short", f"The car ID {key} is too short. The min car ID is {MIN_KEY}.")

    if len(suffix) > MAX_SUFFIX_LEN:
        raise InvalidKey(key, "too_long", f"The car ID {key} is too long. The max car ID is {MAX_KEY}.")

    if suffix[0] == "0" and len(suffix) > 1:
        raise InvalidKey(key, "leading_zero", f"The car ID {key} cannot have leading zeros.")

    # str.isdigit accepts non-ASCII digits
    if not (suffix.isascii() and suffix.isdigit()):
        raise InvalidKey(key, "not_numeric", f"The car ID {key} must be numeric.")


def is_valid_key(key: str) -> bool:
    try:
        verify_key(key)
    except InvalidKey:
        return False
    return True
