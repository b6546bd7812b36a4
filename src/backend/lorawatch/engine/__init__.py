"""Alarm and automation evaluation engine."""
