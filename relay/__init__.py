"""WebSocket message relay: every message from one client is fanned out to all others."""
