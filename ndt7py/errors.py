class Ndt7Error(Exception):
    """Base class of every error reported by ndt7py."""


class PolicyError(Ndt7Error):
    """The M-Lab data policy has not been accepted."""


class DiscoveryError(Ndt7Error):
    """The locate service failed or returned an unusable answer."""


class TransportError(Ndt7Error):
    """The websocket connection failed or was closed abnormally."""


class DecodeError(TransportError):
    """A text frame from the server is not a valid JSON measurement."""
