"""Core domain primitives shared across rolegraph features."""
