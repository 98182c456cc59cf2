"""Core functionality for node-catalog."""
