"""Capability engine services."""
