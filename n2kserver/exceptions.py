"""
n2kserver library exceptions.

This module defines all custom exceptions used throughout the library.
"""


class N2KError(Exception):
    """Base exception for N2K server errors"""
    pass


class N2KDecodeError(N2KError):
    """Raised when a line cannot be decoded in any supported wire format"""
    pass


class N2KConnectionError(N2KError):
    """Raised when a client or upstream connection fails"""
    pass


class N2KLineTooLongError(N2KConnectionError):
    """Raised when a client sends a line longer than the configured limit"""
    pass


class N2KConfigurationError(N2KError):
    """Raised when configuration is invalid"""
    pass
