"""Adapter-layer integrations."""
