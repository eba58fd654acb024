"""
Transaction id sequencing.

Supplies the transaction id stamped on each outgoing message. A
pre-seeded sequence makes exchanges reproducible in tests; once it
runs out, ids are generated randomly.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import logging
from collections import deque
from enum import Enum
from typing import Iterable

from dhcp6pd.dhcp6.errors import SequenceExhausted
from dhcp6pd.dhcp6.messages import MAX_TRANSACTION_ID, new_transaction_id

logger = logging.getLogger(__name__)


class TransactionIdSource(str, Enum):
    """Where the last transaction id came from."""
    DETERMINISTIC = "deterministic"
    RANDOM = "random"


class TransactionSequencer:
    """
    Hands out transaction ids, deterministic ones first.

    Usage:
        sequencer = TransactionSequencer([0x1111, 0x2222])
        sequencer.next()  # 0x1111
        sequencer.next()  # 0x2222
        sequencer.next()  # random
    """

    def __init__(self, transaction_ids: Iterable[int] | None = None):
        ids = list(transaction_ids or [])
        for xid in ids:
            if not 0 <= xid <= MAX_TRANSACTION_ID:
                raise ValueError(f"transaction id out of range: {xid:#x}")
        self._queue: deque[int] = deque(ids)
        self.last_source: TransactionIdSource | None = None

    @property
    def remaining(self) -> int:
        return len(self._queue)

    @property
    def exhausted(self) -> bool:
        return not self._queue

    def take(self) -> int:
        """
        Pop the next deterministic id.

        Raises:
            SequenceExhausted: If no deterministic ids are left
        """
        if not self._queue:
            raise SequenceExhausted("no deterministic transaction ids left")
        self.last_source = TransactionIdSource.DETERMINISTIC
        return self._queue.popleft()

    def next(self) -> int:
        """Return the next deterministic id, or a random one once exhausted."""
        try:
            return self.take()
        except SequenceExhausted:
            xid = new_transaction_id()
            self.last_source = TransactionIdSource.RANDOM
            logger.debug(f"Transaction id sequence exhausted, generated 0x{xid:06x}")
            return xid

    def mark_random(self) -> None:
        """Record that the caller kept a codec-generated id."""
        self.last_source = TransactionIdSource.RANDOM
