"""Database layer for storeauth."""
