"""Managed exceptions, capability options, the guard and the handler."""
