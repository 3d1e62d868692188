# src/amiya/utils/exceptions.py

class AmiyaError(Exception):
    """Base exception class for the Amiya daemon"""
    pass

class ConfigurationError(AmiyaError):
    """Raised when there are issues with configuration"""
    pass

class InitializationError(AmiyaError):
    """Raised when component initialization fails"""
    pass

class ProtocolError(AmiyaError):
    """Raised when a wire message cannot be parsed"""
    pass

class BackendError(AmiyaError):
    """Base exception for backend adapter failures"""
    pass

class BackendConnectionError(BackendError):
    """Raised when an external service is unreachable, absent or timed out"""
    pass

class BackendExecutionError(BackendError):
    """Raised when a call to an external service fails"""
    pass

class BackendUnavailableError(BackendError):
    """Raised when a backend is not present in the application state"""
    pass

class InvalidParameterError(BackendError):
    """Raised when a backend operation receives an unusable argument"""
    pass

class CompositorError(BackendError):
    """Raised when the compositor answers a request with an error"""

    def __init__(self, message: str, code: int = 0):
        super().__init__(message)
        self.code = code

class DaemonConnectionError(AmiyaError):
    """Raised when the control client cannot reach the daemon socket"""
    pass
