"""Curated Plus to Saboritte product links."""
