"""FastAPI dependencies."""

from fastapi import HTTPException, Request

from warelay.relay import Relay


def get_relay(request: Request) -> Relay:
    """Relay instance attached to the app at startup."""
    relay: Relay | None = getattr(request.app.state, "relay", None)
    if relay is None:
        raise HTTPException(status_code=503, detail="relay not ready")
    return relay
