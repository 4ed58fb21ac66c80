"""Library internals for proctree."""
