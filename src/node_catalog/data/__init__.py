"""Bundled node descriptors loaded by the lazy registry."""
