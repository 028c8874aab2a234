"""Transport layer: daemon command socket and notification stream."""
