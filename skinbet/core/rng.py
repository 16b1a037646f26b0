import hashlib
import hmac
import secrets
import random


class TrueRNG:
    """
    A wrapper around Python's `secrets` module to provide cryptographically strong
    random numbers, suitable for casino game logic.
    """

    @staticmethod
    def random_float() -> float:
        """Returns a random float in the range [0.0, 1.0)."""
        # secrets.randbelow(n) returns [0, n). We use a large integer range to approximate a float.
        precision = 10**12
        return secrets.randbelow(precision) / precision

    @staticmethod
    def random_int(min_val: int, max_val: int) -> int:
        """Returns a random integer in the range [min_val, max_val] (inclusive)."""
        if min_val > max_val:
            raise ValueError("min_val must be less than or equal to max_val")
        return min_val + secrets.randbelow(max_val - min_val + 1)

    @staticmethod
    def random_choice(options):
        """Returns a random element from a non-empty sequence."""
        if not options:
            raise IndexError("Cannot choose from an empty sequence")
        return secrets.choice(options)

    @staticmethod
    def shuffle(deck: list) -> list:
        """Returns a new list with elements shuffled using cryptographically strong randomness."""
        shuffled_deck = deck[:]
        random.SystemRandom().shuffle(shuffled_deck)
        return shuffled_deck


class SeededRNG:
    """
    Deterministic random stream derived from a server seed, client seed and nonce.

    Bytes come from HMAC-SHA256(server_seed, "client_seed:nonce:cursor"); every
    four bytes make one float in [0, 1). Anyone holding the revealed seeds can
    replay the exact same sequence of draws.
    """

    BYTES_PER_FLOAT = 4

    def __init__(self, server_seed: str, client_seed: str, nonce: int):
        self.server_seed = server_seed
        self.client_seed = client_seed
        self.nonce = nonce
        self._cursor = 0
        self._buffer = b""

    def _next_bytes(self) -> bytes:
        if len(self._buffer) < self.BYTES_PER_FLOAT:
            message = f"{self.client_seed}:{self.nonce}:{self._cursor}".encode()
            self._buffer = hmac.new(
                self.server_seed.encode(), message, hashlib.sha256
            ).digest()
            self._cursor += 1
        chunk = self._buffer[: self.BYTES_PER_FLOAT]
        self._buffer = self._buffer[self.BYTES_PER_FLOAT:]
        return chunk

    def random_float(self) -> float:
        """Returns a float in [0.0, 1.0) built from the next four stream bytes."""
        return sum(
            byte / (256 ** (i + 1)) for i, byte in enumerate(self._next_bytes())
        )

    def random_int(self, min_val: int, max_val: int) -> int:
        if min_val > max_val:
            raise ValueError("min_val must be less than or equal to max_val")
        span = max_val - min_val + 1
        return min_val + int(self.random_float() * span)

    def random_choice(self, options):
        if not options:
            raise IndexError("Cannot choose from an empty sequence")
        return options[self.random_int(0, len(options) - 1)]

    def shuffle(self, deck: list) -> list:
        """Fisher-Yates over the seeded stream."""
        shuffled_deck = deck[:]
        for i in range(len(shuffled_deck) - 1, 0, -1):
            j = self.random_int(0, i)
            shuffled_deck[i], shuffled_deck[j] = shuffled_deck[j], shuffled_deck[i]
        return shuffled_deck


rng = TrueRNG()
