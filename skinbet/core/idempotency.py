"""
Idempotency registry for bet settlement.

A retried request carrying the same key must get the original receipt back
instead of settling again. Duplicates racing each other are serialized on a
per-key lock; receipts are cached as soon as the ledger write succeeds, so a
retry after a failed history append still finds them.
"""

import threading
from collections import OrderedDict
from contextlib import contextmanager
from typing import Dict, Optional, Tuple

from skinbet.config import settings
from skinbet.core.models import SettlementReceipt


class IdempotencyRegistry:
    def __init__(self, max_keys: int = None):
        self.max_keys = max_keys or settings.idempotency.max_keys
        self._receipts: "OrderedDict[Tuple[str, str], SettlementReceipt]" = OrderedDict()
        self._key_locks: Dict[Tuple[str, str], list] = {}
        self._lock = threading.Lock()

    @contextmanager
    def hold(self, user_id: str, key: Optional[str]):
        """Serialize settlements sharing (user_id, key). No-op without a key."""
        if not key:
            yield
            return

        scope = (user_id, key)
        with self._lock:
            # [lock, waiter count]
            entry = self._key_locks.setdefault(scope, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._lock:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._key_locks[scope]

    def get(self, user_id: str, key: Optional[str]) -> Optional[SettlementReceipt]:
        if not key:
            return None
        with self._lock:
            return self._receipts.get((user_id, key))

    def remember(self, user_id: str, key: Optional[str], receipt: SettlementReceipt):
        if not key:
            return
        with self._lock:
            self._receipts[(user_id, key)] = receipt
            self._receipts.move_to_end((user_id, key))
            while len(self._receipts) > self.max_keys:
                self._receipts.popitem(last=False)
