"""Shared kernel: logging, configuration and internal failure handling."""
