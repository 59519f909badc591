class PySNSException(Exception):
    pass


class InvalidArgumentException(PySNSException):
    pass


class InvalidDataException(PySNSException):
    pass


class DecodingException(PySNSException):
    pass


class IdentityException(PySNSException):
    pass


class ConnectionException(PySNSException):
    pass


class TransferFailedException(PySNSException):
    pass


class GovernanceException(PySNSException):
    def __init__(self, message: str, error_type: int = 0):
        super().__init__(message)
        self.error_type = error_type


class DeployedServiceNotFoundException(PySNSException):
    pass


class MissingEndpointException(PySNSException):
    pass


class SaleException(PySNSException):
    pass


class PollTimeoutException(PySNSException):
    """Raised when a bounded poll loop runs out of attempts.

    Args:
        description (str): What was being waited for.
        attempts (int): Number of observations made.
        elapsed (float): Time units spent sleeping between observations.
        last_state: The last observed value, or the last tolerated error.
    """

    def __init__(self, description: str, attempts: int, elapsed: float, last_state=None):
        super().__init__(
            f"Timed out waiting for {description} after {attempts} attempts "
            f"({elapsed:g}s elapsed), last observed state: {last_state!r}"
        )
        self.description = description
        self.attempts = attempts
        self.elapsed = elapsed
        self.last_state = last_state


class RecordException(PySNSException):
    pass


class CanisterCallException(PySNSException):
    """A query or update call was rejected or could not be delivered."""

    def __init__(self, canister: str, method: str, reason: str):
        super().__init__(f"Call to {method} on {canister} failed: {reason}")
        self.canister = canister
        self.method = method
        self.reason = reason


class RegistrationException(SaleException):
    """The sale has not (yet) accepted a participant's ICP."""

    def __init__(self, message: str, result=None):
        super().__init__(message)
        self.result = result


class AbortedException(PySNSException):
    """Work stopped because another part of the same stage failed fatally."""
