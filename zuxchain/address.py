"""
Collision-free account address generation.

Addresses are 7-character base-62 codes. A linear congruential map
x = (a * counter + b) mod M with gcd(a, M) == 1 visits every code in the
space exactly once before repeating, so issued addresses are unique without
storing more than the issued set.
"""
import logging
import math
import secrets
import threading
from typing import Optional

from .core import GenerationExhausted
from .utils.encoding import BASE, CODE_LEN, to_code

logger = logging.getLogger(__name__)


class AddressGenerator:
    MAX_RETRIES = 10

    def __init__(self, a: Optional[int] = None, b: Optional[int] = None,
                 modulus: Optional[int] = None, code_length: int = CODE_LEN):
        self.code_length = code_length
        self.modulus = BASE ** code_length if modulus is None else modulus
        if self.modulus <= 0 or self.modulus > BASE ** code_length:
            raise ValueError(f"Modulus must be in (0, {BASE ** code_length}]")

        if a is None:
            a = self._random_multiplier(self.modulus)
        elif math.gcd(a, self.modulus) != 1:
            raise ValueError(f"Multiplier {a} is not coprime with modulus {self.modulus}")

        self.a = a
        self.b = secrets.randbelow(self.modulus) if b is None else b % self.modulus
        self.counter = 0
        self._used = set()
        self.lock = threading.Lock()

    @staticmethod
    def _random_multiplier(modulus: int) -> int:
        # For 62^7 this means odd and not a multiple of 31
        while True:
            a = secrets.randbelow(modulus)
            if a > 0 and math.gcd(a, modulus) == 1:
                return a

    def generate(self) -> str:
        """Issue the next unused address."""
        with self.lock:
            for _ in range(self.MAX_RETRIES):
                if self.counter >= self.modulus:
                    raise GenerationExhausted(
                        f"Address space of {self.modulus} codes is exhausted"
                    )
                x = (self.a * self.counter + self.b) % self.modulus
                self.counter += 1

                code = to_code(x, self.code_length)
                if code not in self._used:
                    self._used.add(code)
                    return code
                logger.debug(f"Address collision on {code}, retrying")

        raise GenerationExhausted(
            f"Failed to generate a unique address after {self.MAX_RETRIES} attempts"
        )

    def reserve_code(self, code: str):
        """Mark a sentinel code as used so it is never issued."""
        with self.lock:
            self._used.add(code)

    @property
    def issued_count(self) -> int:
        with self.lock:
            return len(self._used)

    def __contains__(self, code: str) -> bool:
        with self.lock:
            return code in self._used
