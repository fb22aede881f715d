"""Error taxonomy for the connection-state manager"""


class HomeControlError(Exception):
    """Base class for every failure the agent knows how to recover from."""


class TransientNetworkFailure(HomeControlError):
    """Timeout, refused connection or server error. The next tick retries."""


class ReadingNotFound(TransientNetworkFailure):
    """The server has no reading stored yet."""


class StreamTerminated(HomeControlError):
    """The stream connection ended (remote close, transport error, end of stream)."""


class ProtocolViolation(HomeControlError):
    """
    An inbound frame or response body could not be understood.

    Fatal violations (broken framing) end the stream session; non-fatal ones
    only drop the offending message.
    """

    def __init__(self, message: str, fatal: bool = False):
        super().__init__(message)
        self.fatal = fatal


class SettingsPushFailure(HomeControlError):
    """Subscription settings could not be delivered. Not retried."""
