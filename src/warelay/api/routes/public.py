"""Public routes."""

from fastapi import APIRouter, Depends

from warelay.api.deps import get_relay
from warelay.relay import Relay

router = APIRouter()


@router.get("/health")
def health(relay: Relay = Depends(get_relay)) -> dict:
    """Health check with in-memory state sizes."""
    return {
        "status": "ok",
        "storage": relay.settings.storage_provider,
        "queue_state": relay.queue.state.value,
        "queue_pending": relay.queue.pending,
        **relay.menu_store.stats(),
    }
