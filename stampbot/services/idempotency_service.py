from __future__ import annotations

import hashlib
import uuid
from datetime import timedelta

from stampbot.logging_config import get_logger
from stampbot.services.record_store import RecordStore, RecordStoreError, lt
from stampbot.services.time_utils import utcnow

logger = get_logger("idempotency")

TABLE = "processed_messages"


def build_inbound_message_id(
    message_id: str | None,
    sender: str | None,
    timestamp: str | int | None,
    message_text: str | None,
) -> str:
    """Provider id when present, otherwise a stable id derived from the delivery."""
    if message_id and message_id.strip():
        return message_id.strip()
    if sender and timestamp is not None:
        return f"{sender}:{timestamp}"
    if sender and message_text:
        digest = hashlib.sha256(message_text.encode("utf-8")).hexdigest()[:16]
        return f"{sender}:{digest}"
    return str(uuid.uuid4())


class IdempotencyGuard:
    """Exactly-once gate over the write-once processed_messages set.

    Store failures fail open: dropping a customer's message is worse than an
    occasional double reply.
    """

    def __init__(self, store: RecordStore):
        self.store = store

    def has_processed(self, message_id: str) -> bool:
        try:
            return self.store.get_one(TABLE, {"message_id": message_id}, "message_id") is not None
        except RecordStoreError as e:
            logger.warning(
                "Dedup read failed, treating as unprocessed",
                extra={"context": {"message_id": message_id, "error": str(e)}},
            )
            return False

    def mark_processed(self, message_id: str) -> None:
        self.store.insert_if_absent(
            TABLE,
            {"message_id": message_id, "processed_at": utcnow()},
            conflict=["message_id"],
        )

    def claim(self, message_id: str) -> bool:
        """Atomically check-and-mark. True when this invocation owns the message."""
        try:
            created = self.store.insert_if_absent(
                TABLE,
                {"message_id": message_id, "processed_at": utcnow()},
                conflict=["message_id"],
            )
        except RecordStoreError as e:
            logger.warning(
                "Dedup claim failed, processing anyway",
                extra={"context": {"message_id": message_id, "error": str(e)}},
            )
            return True

        if not created:
            logger.info("Duplicate message_id", extra={"context": {"message_id": message_id}})
        return created

    def prune(self, older_than_days: int) -> int:
        cutoff = utcnow() - timedelta(days=older_than_days)
        removed = self.store.delete(TABLE, {"processed_at": lt(cutoff)})
        logger.info("Pruned processed messages", extra={"context": {"removed": removed, "cutoff": cutoff.isoformat()}})
        return removed
