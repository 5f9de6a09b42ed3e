"""HTTP surface for storeauth."""
