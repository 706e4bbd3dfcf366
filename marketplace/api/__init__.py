"""HTTP API for the marketplace (FastAPI).

The application lives in ``marketplace.api.main``; importing it reads
settings from the environment, so this package does not import it eagerly.
"""
