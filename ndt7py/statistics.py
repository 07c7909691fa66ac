from dataclasses import dataclass

import click

from ndt7py.constants import MEASUREMENT_INTERVAL
from ndt7py.utils import format_bytes, format_rate, now


@dataclass(frozen=True)
class ClientMeasurement:
    elapsed_time: float
    num_bytes: int
    mean_mbps: float

    def to_dict(self):
        return {"ElapsedTime": self.elapsed_time,
                "NumBytes": self.num_bytes,
                "MeanClientMbps": self.mean_mbps}


def download_mbps(total, elapsed_ms):
    # bytes * 8 bits/byte / 1e6 bits/Mbit * 1000 ms/s == bytes / ms * 0.008
    if elapsed_ms <= 0:
        return 0.0
    return total / elapsed_ms * 0.008


def upload_mbps(num_bytes, elapsed):
    if elapsed <= 0:
        return 0.0
    return num_bytes * 8 / 1e6 / elapsed


class MeasurementSampler:
    """Client-side throughput of one direction.

    A sample is due once at least `interval` seconds passed since the previous
    one; the comparison against the clock (instead of a timer tick) keeps the
    cadence right under scheduling jitter.
    """

    def __init__(self, upload=False, clock=now, interval=MEASUREMENT_INTERVAL):
        self.upload = upload
        self.clock = clock
        self.interval = interval
        self.start = None
        self.previous = None

    def reset(self, start=None):
        self.start = self.clock() if start is None else start
        self.previous = self.start

    def due(self, t):
        return t - self.previous >= self.interval

    def measure(self, total, buffered=0, t=None):
        if t is None:
            t = self.clock()
        elapsed = t - self.start
        if self.upload:
            # bytes still queued locally have not left the client yet
            num_bytes = max(0, total - buffered)
            mbps = upload_mbps(num_bytes, elapsed)
        else:
            num_bytes = total
            mbps = download_mbps(total, elapsed * 1000)
        return ClientMeasurement(elapsed, num_bytes, mbps)

    def poll(self, total, buffered=0, t=None):
        """Returns a measurement when one is due, None otherwise."""
        if t is None:
            t = self.clock()
        if not self.due(t):
            return None
        self.previous = t
        return self.measure(total, buffered, t)


class SessionSummary:
    """Collects the events of one direction for the final report."""

    def __init__(self, direction):
        self.direction = direction
        self.count = 0
        self.servercount = 0
        self.last_client = None
        self.last_server = None
        self.maxMbps = None

    def add(self, measurement):
        if measurement.client_data is not None:
            client = measurement.client_data
            self.count += 1
            self.last_client = client
            if self.maxMbps is None:
                self.maxMbps = client.mean_mbps
            else:
                self.maxMbps = max(self.maxMbps, client.mean_mbps)
        if measurement.server_data is not None:
            self.servercount += 1
            self.last_server = measurement.server_data

    def complete(self, result):
        if result.last_client_measurement is not None:
            self.last_client = result.last_client_measurement
        if result.last_server_measurement is not None:
            self.last_server = result.last_server_measurement

    def server_mbps(self):
        """Mean throughput from the server's TCPInfo, when it reported one."""
        if not isinstance(self.last_server, dict):
            return None
        tcpinfo = self.last_server.get("TCPInfo") or {}
        elapsed = tcpinfo.get("ElapsedTime")
        key = "BytesAcked" if self.direction == "download" else "BytesReceived"
        if not elapsed or tcpinfo.get(key) is None:
            return None
        # ElapsedTime is in microseconds
        return tcpinfo[key] * 8 / float(elapsed)

    def dump(self):
        click.echo(
            "===============================================================================")
        click.echo(
            "Direction      Client mean    Client peak    Server mean      Bytes    Elapsed")
        click.echo(
            "-------------------------------------------------------------------------------")
        if self.last_client is not None:
            click.echo("  %-9s   %s  %s  %s  %s  %7.2fsec" % (
                self.direction.capitalize() + ":",
                format_rate(self.last_client.mean_mbps),
                format_rate(self.maxMbps),
                format_rate(self.server_mbps()),
                format_bytes(self.last_client.num_bytes),
                self.last_client.elapsed_time))
        else:
            click.echo("  NO STATS AVAILABLE (%s did not run)" % self.direction, err=True)
        click.echo(
            "-------------------------------------------------------------------------------")
        click.echo(
            "                 %4d client samples, %4d server measurements"
            % (self.count, self.servercount))
        click.echo(
            "===============================================================================")
