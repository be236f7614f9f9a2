"""
Exception hierarchy for the print dispatch core
"""


class PrintDispatchError(Exception):
    """Base exception for dispatch and scheduling errors"""
    pass


class ConfigurationError(PrintDispatchError):
    """Raised when no printer endpoint can be resolved"""
    pass


class PayloadValidationError(PrintDispatchError):
    """Raised when a print request cannot be turned into a payload"""
    pass


class InvalidTransitionError(PrintDispatchError):
    """Raised when a job status change is not allowed"""
    def __init__(self, from_status, to_status, reason=None):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            reason or f"Transition from '{from_status}' to '{to_status}' is not allowed"
        )


class PrintExecutionError(PrintDispatchError):
    """Raised by a print procedure when the printer did not accept the job"""
    pass
