"""Throttle rules and the store port."""
