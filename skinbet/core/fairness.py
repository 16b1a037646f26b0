"""
Provably fair commit-reveal helpers.

A server seed is generated and its SHA-256 published before the bet; the
outcome is drawn from HMAC(server_seed, client_seed:nonce); the server seed
is revealed once the bet is settled so the player can replay the draw.
"""

import hashlib
import secrets
import threading
import uuid
from dataclasses import dataclass
from typing import Dict

import orjson

from skinbet.core.exceptions import InvalidInput
from skinbet.core.logger import get_logger

logger = get_logger("fairness")


def generate_server_seed() -> str:
    """Generate a new random server seed"""
    return secrets.token_hex(32)


def generate_client_seed() -> str:
    return secrets.token_hex(16)


def hash_server_seed(server_seed: str) -> str:
    """Get the hash of the server seed for pre-commitment"""
    return hashlib.sha256(server_seed.encode()).hexdigest()


def fairness_hash(server_seed: str, client_seed: str, nonce: int) -> str:
    """Commitment over the full seed triple, fixed before the outcome is drawn."""
    combined = f"{server_seed}:{client_seed}:{nonce}"
    return hashlib.sha256(combined.encode()).hexdigest()


def game_hash(fairness: str, outcome: Dict, bet_amount, win_amount) -> str:
    """Fingerprint of the settled payload, bound to its fairness commitment."""
    payload = orjson.dumps(
        {
            "fairness_hash": fairness,
            "outcome": outcome,
            "bet_amount": str(bet_amount),
            "win_amount": str(win_amount),
        },
        option=orjson.OPT_SORT_KEYS,
    )
    return hashlib.sha256(payload).hexdigest()


@dataclass(frozen=True)
class SeedCommitment:
    seed_id: str
    server_seed_hash: str

    def to_dict(self) -> Dict:
        return {"seed_id": self.seed_id, "server_seed_hash": self.server_seed_hash}


class SeedVault:
    """
    Holds committed, not yet revealed server seeds. Each seed is bound to one
    user and can be consumed by exactly one settlement.
    """

    def __init__(self):
        self._seeds: Dict[str, tuple] = {}
        self._lock = threading.Lock()

    def commit(self, user_id: str) -> SeedCommitment:
        server_seed = generate_server_seed()
        seed_id = f"seed_{uuid.uuid4().hex}"
        with self._lock:
            self._seeds[seed_id] = (user_id, server_seed)
        logger.debug(f"Committed seed {seed_id} for user {user_id}")
        return SeedCommitment(seed_id=seed_id, server_seed_hash=hash_server_seed(server_seed))

    def restore(self, user_id: str, seed_id: str, server_seed: str):
        """Put a consumed seed back after its bet was rejected."""
        with self._lock:
            self._seeds[seed_id] = (user_id, server_seed)

    def consume(self, user_id: str, seed_id: str) -> str:
        with self._lock:
            entry = self._seeds.get(seed_id)
            if entry is None or entry[0] != user_id:
                raise InvalidInput("Invalid or used seed")
            del self._seeds[seed_id]
        return entry[1]

    def __len__(self):
        with self._lock:
            return len(self._seeds)
