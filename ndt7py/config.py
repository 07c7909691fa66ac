from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Mapping, Optional

from ndt7py.constants import PROTOCOL_DEFAULT, PROTOCOLS


# camelCase keys used by other ndt7 clients
_ALIASES = {
    "userAcceptedDataPolicy": "user_accepted_data_policy",
    "mlabDataPolicyInapplicable": "mlab_data_policy_inapplicable",
}


@dataclass(frozen=True)
class Config:
    """Settings of one measurement run.

    `server` skips discovery and measures against the given host;
    `loadbalancer` replaces the M-Lab locate URL; `metadata` is sent as query
    string with the discovery request and every measurement URL.
    """

    user_accepted_data_policy: bool = False
    mlab_data_policy_inapplicable: bool = False
    server: Optional[str] = None
    protocol: str = PROTOCOL_DEFAULT
    loadbalancer: Optional[str] = None
    metadata: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if self.protocol not in PROTOCOLS:
            raise ValueError("unsupported protocol %r, expected one of %s"
                             % (self.protocol, ", ".join(PROTOCOLS)))
        object.__setattr__(self, "metadata", MappingProxyType(
            {str(k): str(v) for k, v in dict(self.metadata).items()}))

    @classmethod
    def from_dict(cls, values):
        names = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in values.items():
            name = _ALIASES.get(key, key)
            if name not in names:
                raise ValueError("unknown configuration key %r" % key)
            kwargs[name] = value
        return cls(**kwargs)
