"""Helper utilities shared by handlers and managers."""
