class ApplicationError(Exception):
    pass


class ProtocolError(ApplicationError):
    """The admission review could not be processed at all."""


class DecodeError(ProtocolError):
    pass


class EncodeError(ProtocolError):
    pass


class NotFoundError(ApplicationError):
    """No node name could be resolved from a pod's node affinity."""


class ProviderError(ApplicationError):
    pass


class FetchError(ProviderError):
    """A cluster state lookup failed or timed out."""
