"""HTTP surface for the Murmur privacy gate (Starlette)."""
