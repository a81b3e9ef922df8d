"""Service catalog."""
