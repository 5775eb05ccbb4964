"""
All exceptions raised on purpose by protochain derive from ProtochainException.

Where a failure has a natural builtin counterpart we use the builtin instead,
most notably TimeoutError for an expired request deadline.
"""


class ProtochainException(Exception):
    """
    Base class for all exceptions thrown by protochain.
    """

    def __init__(self, message=None):
        super().__init__(message)


class ConfigurationError(ProtochainException):
    """
    Trust material, key material or options are missing or cannot be parsed.
    """


class TransportError(ProtochainException):
    """
    An outbound call failed below HTTP semantics: connect, TLS handshake,
    ALPN mismatch or malformed framing.
    """


class ProtocolDecodeError(ProtochainException):
    """
    A relay body does not follow the observation/sentinel/forwarded-body framing.
    """


class UpstreamError(ProtochainException):
    """
    The next hop answered, but not with a 2xx status.
    """

    def __init__(self, message=None, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ListenerExited(ProtochainException):
    """
    One of the supervised listeners stopped; the whole chain goes down with it.
    """
