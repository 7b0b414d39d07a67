from typing import Optional

from stampbot.logging_config import get_logger
from stampbot.services.record_store import RecordStore
from stampbot.services.state_machine import StaleStateError
from stampbot.services.time_utils import utcnow

logger = get_logger("customer_service")

TABLE = "customers"
STAMP_CARD_SIZE = 10
INCREMENT_ATTEMPTS = 5


def build_card_url(base_url: str, stamps: int) -> str:
    capped = max(0, min(int(stamps), STAMP_CARD_SIZE))
    return f"{base_url.rstrip('/')}/card?stamps={capped}"


class CustomerService:
    def __init__(self, store: RecordStore):
        self.store = store

    def get_customer(self, customer_id: str) -> Optional[dict]:
        return self.store.get_one(TABLE, {"customer_id": customer_id})

    def ensure_customer(self, customer_id: str, wa_name: Optional[str] = None) -> dict:
        """Find customer by WhatsApp address or create a new one; touches last_seen_at."""
        now = utcnow()
        customer = self.get_customer(customer_id)

        if not customer:
            created = self.store.insert_if_absent(
                TABLE,
                {
                    "customer_id": customer_id,
                    "wa_name": wa_name,
                    "created_at": now,
                    "last_seen_at": now,
                    "number_of_visits": 0,
                },
                conflict=["customer_id"],
            )
            if created:
                logger.info("Customer created", extra={"context": {"customer_id": customer_id}})
            return self.get_customer(customer_id) or {"customer_id": customer_id, "wa_name": wa_name}

        patch = {"last_seen_at": now}
        if wa_name and wa_name != customer.get("wa_name"):
            patch["wa_name"] = wa_name
        self.store.update(TABLE, {"customer_id": customer_id}, patch)
        customer.update({key: value for key, value in patch.items() if key == "wa_name"})
        return customer

    def record_visit(self, customer_id: str, *, simulated: bool = False) -> int:
        """Add one stamp and return the new visit count.

        The counter only moves if it still holds the value we read, so two
        concurrent stamps both land.
        """
        now = utcnow()
        for _ in range(INCREMENT_ATTEMPTS):
            customer = self.get_customer(customer_id) or {}
            visits = int(customer.get("number_of_visits") or 0)
            updated = self.store.update(
                TABLE,
                {"customer_id": customer_id, "number_of_visits": visits},
                {"number_of_visits": visits + 1, "last_visit_at": now},
            )
            if updated:
                self.store.insert("visits", {"customer_id": customer_id, "visited_at": now, "simulated": simulated})
                return visits + 1
        raise StaleStateError(f"{customer_id}:visits", visits)

    def set_preferred_drink(self, customer_id: str, drink: str) -> None:
        self.store.update(TABLE, {"customer_id": customer_id}, {"preferred_drink": drink})

    def reset_visits(self, customer_id: str) -> None:
        self.store.update(TABLE, {"customer_id": customer_id}, {"number_of_visits": 0, "last_visit_at": None})
