"""Merge CSS module fragments into one stylesheet published behind a symlink swap."""
