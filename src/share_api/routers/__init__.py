"""HTTP and WebSocket routes of the Share API."""
