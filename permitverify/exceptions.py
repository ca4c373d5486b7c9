"""
Custom exceptions for PermitVerify.

Raised only at the I/O edges of the pipeline (configuration, file loading,
schema validation). The matching and scoring core never raises on bad data.
"""


class PermitVerifyError(Exception):
    """Base exception for PermitVerify errors"""
    pass


class ConfigurationError(PermitVerifyError):
    """Raised when a configuration file cannot be used"""
    pass


class SchemaValidationError(PermitVerifyError):
    """Raised when an input batch is missing required columns"""
    pass
