"""FastAPI application for the compress/decompress service."""
