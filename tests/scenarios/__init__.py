"""End-to-end scenario tests running full FastAPI applications."""
