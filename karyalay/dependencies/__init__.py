"""FastAPI dependencies for authentication and service lookup."""
