"""Core exceptions for the Laudato points service"""


class ConfigurationError(Exception):
    """Raised when system configuration is invalid"""
    pass
