"""Repository manager backends."""
