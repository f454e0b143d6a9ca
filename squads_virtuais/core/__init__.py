"""Application exception taxonomy."""
