"""Target-platform client registry."""
