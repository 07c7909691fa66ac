from dataclasses import dataclass, fields
from typing import Any, Callable, Optional

from ndt7py.errors import Ndt7Error


@dataclass(frozen=True)
class StartEvent:
    start_time: float
    expected_end_time: float

    def to_dict(self):
        return {"StartTime": self.start_time,
                "ExpectedEndTime": self.expected_end_time}


@dataclass(frozen=True)
class Measurement:
    """Payload of the measurement events.

    Exactly what was observed: a client-side sample, a server record, or both.
    """

    client_data: Optional[Any] = None
    server_data: Optional[Any] = None

    def __post_init__(self):
        if self.client_data is None and self.server_data is None:
            raise ValueError("a measurement needs client or server data")

    def to_dict(self):
        data = {}
        if self.client_data is not None:
            data["ClientData"] = self.client_data.to_dict()
        if self.server_data is not None:
            data["ServerData"] = self.server_data
        return data


@dataclass(frozen=True)
class SessionResult:
    last_client_measurement: Optional[Any] = None
    last_server_measurement: Optional[Any] = None

    def to_dict(self):
        client = self.last_client_measurement
        return {"LastClientMeasurement": client.to_dict() if client else None,
                "LastServerMeasurement": self.last_server_measurement}


Handler = Callable[..., None]

_EVENT_NAMES = {
    "error": "error",
    "serverDiscovery": "server_discovery",
    "serverChosen": "server_chosen",
    "downloadStart": "download_start",
    "downloadMeasurement": "download_measurement",
    "downloadComplete": "download_complete",
    "uploadStart": "upload_start",
    "uploadMeasurement": "upload_measurement",
    "uploadComplete": "upload_complete",
}


@dataclass(frozen=True)
class UserCallbacks:
    """One optional handler per event; unset events are ignored."""

    error: Optional[Handler] = None
    server_discovery: Optional[Handler] = None
    server_chosen: Optional[Handler] = None
    download_start: Optional[Handler] = None
    download_measurement: Optional[Handler] = None
    download_complete: Optional[Handler] = None
    upload_start: Optional[Handler] = None
    upload_measurement: Optional[Handler] = None
    upload_complete: Optional[Handler] = None

    @classmethod
    def from_dict(cls, handlers):
        """Accepts both the camelCase event names and the field names."""
        names = {f.name for f in fields(cls)}
        kwargs = {}
        for key, handler in handlers.items():
            name = _EVENT_NAMES.get(key, key)
            if name not in names:
                raise ValueError("unknown callback %r" % key)
            kwargs[name] = handler
        return cls(**kwargs)


def noop(*args, **kwargs):
    pass


def default_error_callback(err):
    """Used when the caller registered no error handler: raise the error."""
    if isinstance(err, BaseException):
        raise err
    raise Ndt7Error(err)


def resolve(name, callbacks, default=None):
    """Return the handler registered for event name.

    Falls back to default, then to a no-op, so every call site gets a
    callable. For the "error" event the fallback is default_error_callback
    unless the call site passes its own default.
    """
    name = _EVENT_NAMES.get(name, name)
    handler = getattr(callbacks, name, None) if callbacks is not None else None
    if handler is not None:
        return handler
    if default is not None:
        return default
    if name == "error":
        return default_error_callback
    return noop
