"""Utility modules: configuration, constants, validation and the operator CLI."""
