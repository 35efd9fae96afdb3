"""Route handlers for the acknowledgment API."""
