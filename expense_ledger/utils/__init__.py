"""Small framework-independent helpers."""
