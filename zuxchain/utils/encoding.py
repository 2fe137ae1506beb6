"""
Fixed-width base-62 encoding for account codes.
"""

CHARSET = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
BASE = len(CHARSET)
CODE_LEN = 7


def to_code(x: int, length: int = CODE_LEN) -> str:
    """
    Encode a non-negative integer as a base-62 string of exactly `length`
    characters, left-padded with '0'.
    """
    if x < 0:
        raise ValueError("Cannot encode a negative number")
    if x >= BASE ** length:
        raise ValueError(f"{x} does not fit in {length} base-62 digits")

    digits = []
    while x > 0:
        x, idx = divmod(x, BASE)
        digits.append(CHARSET[idx])

    while len(digits) < length:
        digits.append('0')

    digits.reverse()
    return ''.join(digits)


def from_code(code: str, length: int = CODE_LEN) -> int:
    """Decode a base-62 code produced by `to_code`."""
    if len(code) != length:
        raise ValueError(f"Code must be exactly {length} characters long")

    value = 0
    for ch in code:
        idx = CHARSET.find(ch)
        if idx < 0:
            raise ValueError(f"Invalid character in code: {ch!r}")
        value = value * BASE + idx
    return value
