#!/usr/bin/python

##############################################################################
#                                                                            #
#  Objective:                                                                #
#    Python client for the ndt7 network performance measurement protocol    #
#    (Measurement Lab NDT, version 7) over WebSocket.                        #
#                                                                            #
#  Features supported:                                                       #
#    - server discovery through the M-Lab locate service (or a custom       #
#      load balancer) and explicitly configured servers                     #
#    - download and upload measurements, ws:// and wss://                   #
#    - adaptive upload message size (8 KiB up to 8 MiB)                      #
#    - client-side throughput samples every 250 ms                           #
#    - server-side measurements forwarded verbatim                           #
#                                                                            #
#  Modes of operation:                                                       #
#    - run: discovery, download, then upload                                 #
#    - download / upload: a single direction                                 #
#    - locate: discovery only                                                #
#                                                                            #
#  Limitations:                                                              #
#    Client-side upload figures depend on the size of the transport write   #
#    buffer reported by the OS, which is an estimate of unsent bytes.       #
#                                                                            #
#  Not yet supported:                                                        #
#    - retry against further locate results when the first server fails    #
#    - persistence of historical results                                     #
#                                                                            #
#  License:                                                                  #
#    Licensed under the BSD license                                          #
#                                                                            #
##############################################################################

__version__ = "0.1.0"

from ndt7py.callbacks import UserCallbacks, Measurement, SessionResult, StartEvent
from ndt7py.config import Config
from ndt7py.errors import Ndt7Error, PolicyError, DiscoveryError, TransportError, DecodeError
from ndt7py.locate import discover_server_urls
from ndt7py.runner import run, download, upload
from ndt7py.session import SessionState
from ndt7py.statistics import ClientMeasurement

__all__ = [
    "__version__",
    "Config",
    "UserCallbacks",
    "Measurement",
    "SessionResult",
    "StartEvent",
    "ClientMeasurement",
    "SessionState",
    "Ndt7Error",
    "PolicyError",
    "DiscoveryError",
    "TransportError",
    "DecodeError",
    "discover_server_urls",
    "run",
    "download",
    "upload",
]
