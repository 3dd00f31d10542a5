"""Layerfill command-line tools."""
