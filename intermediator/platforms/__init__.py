"""Plus and Saboritte API clients and their response schemas."""
