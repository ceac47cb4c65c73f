"""HTTP surface for large objects (FastAPI)."""
