"""api/ -- FastAPI HTTP layer for the enrollment portal."""
