"""Clients registry."""
