"""Order entities, free-text parsing, payload transformation and storage."""
