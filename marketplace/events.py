"""Domain events emitted by the marketplace core.

Events are published only after the state change that triggers them has
committed. Delivery (push, sockets, email) is the publisher's concern; the
core makes no delivery guarantee.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from marketplace.logging_config import log_marketplace_event
from marketplace.types import utc_now

logger = logging.getLogger(__name__)


class MarketplaceEventType(str, Enum):
    """Types of events emitted by the core."""

    OFFER_RECEIVED = "offer_received"
    OFFER_ACCEPTED = "offer_accepted"
    OFFER_REJECTED = "offer_rejected"
    JOB_COMPLETED = "job_completed"
    UPGRADE_DECIDED = "upgrade_decided"
    COMPLAINT_UPDATED = "complaint_updated"


@dataclass
class MarketplaceEvent:
    """A committed state change addressed to one recipient."""

    event_type: MarketplaceEventType
    recipient_id: str
    entity_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "recipient_id": self.recipient_id,
            "entity_id": self.entity_id,
            "payload": self.payload,
            "created_at": self.created_at.isoformat(),
        }


class EventPublisher(Protocol):
    """Fan-out boundary for domain events."""

    def publish(self, event: MarketplaceEvent) -> None:
        ...


class InMemoryEventPublisher:
    """Collects events in a list. Used by tests and local tooling."""

    def __init__(self):
        self.events: List[MarketplaceEvent] = []

    def publish(self, event: MarketplaceEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: MarketplaceEventType) -> List[MarketplaceEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()


class LoggingEventPublisher:
    """Writes each event to the marketplace event log."""

    def publish(self, event: MarketplaceEvent) -> None:
        log_marketplace_event(
            event.event_type.value,
            f"recipient={event.recipient_id} | entity={event.entity_id}",
        )


def publish_safely(publisher: Optional[EventPublisher], event: MarketplaceEvent) -> bool:
    """Publish an event after commit.

    A failing publisher never undoes a committed change, so errors are
    logged and reported through the return value instead of raised.
    """
    if publisher is None:
        return False
    try:
        publisher.publish(event)
        return True
    except Exception as e:
        logger.error(
            f"Failed to publish {event.event_type.value} for {event.entity_id} "
            f"to {event.recipient_id}: {e}"
        )
        return False
