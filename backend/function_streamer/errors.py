class StreamerError(Exception):
    """Base class for errors raised by the streaming adapter."""


class MissingRequestIdError(StreamerError):
    """The invocation event carries no relay request id."""


class ChannelConstructionError(StreamerError):
    """The relay URL could not be turned into an outbound connection."""


class ChannelTransportError(StreamerError):
    """The outbound relay connection failed."""


class ChannelStateError(StreamerError, RuntimeError):
    """The channel was used after it was ended or aborted."""


class HandlerFailure(StreamerError):
    """The wrapped streaming handler raised."""


class FramingError(StreamerError, ValueError):
    """A framed stream could not be decoded."""


class GraphRequestError(StreamerError):
    """The Graph API answered with a non-200 status.

    The message is the stringified status code.
    """

    def __init__(self, status_code: int):
        super().__init__(str(status_code))
        self.status_code = status_code
