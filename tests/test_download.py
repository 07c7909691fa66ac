"""Download session lifecycle."""

from __future__ import annotations

import asyncio
import json

import pytest
from conftest import Connector, FakeConnection

from ndt7py.callbacks import SessionResult, UserCallbacks
from ndt7py.config import Config
from ndt7py.download import DownloadSession
from ndt7py.errors import DecodeError, DiscoveryError, PolicyError, TransportError
from ndt7py.runner import download
from ndt7py.session import SessionState


def callbacks_for(recorder) -> UserCallbacks:
    return UserCallbacks(
        download_start=recorder.handler("start"),
        download_measurement=recorder.handler("measurement"),
        download_complete=recorder.handler("complete"),
        error=recorder.handler("error"))


async def stream(connection, frames, every):
    """Push frames until the connection is closed, returns bytes fed."""
    fed = 0
    for frame in frames:
        if connection.closed:
            break
        connection.feed(frame)
        fed += len(frame.encode("utf-8")) if isinstance(frame, str) else len(frame)
        await asyncio.sleep(every)
    return fed


async def test_download_until_deadline(config, recorder) -> None:
    connection = FakeConnection()
    frames = [b"\0" * 1000] * 1000
    frames.insert(5, '{"Throughput":123}')
    feeder = asyncio.ensure_future(stream(connection, frames, 0.01))

    session = DownloadSession(config, callbacks_for(recorder), connector=Connector(connection),
                              duration=0.6, interval=0.1)
    result = await session.start()
    fed = await feeder

    names = recorder.names()
    assert names[0] == "start"
    assert names[-1] == "complete"
    assert names.count("complete") == 1
    assert "error" not in names

    measurements = recorder.named("measurement")
    server = [m.server_data for m in measurements if m.server_data is not None]
    assert server == [{"Throughput": 123}]
    client = [m.client_data for m in measurements if m.client_data is not None]
    assert len(client) >= 4
    elapsed = [c.elapsed_time for c in client]
    assert elapsed == sorted(elapsed)
    # the final measurement is taken at the deadline, off the cadence
    assert all(b - a >= 0.1 - 1e-9 for a, b in zip(elapsed[:-2], elapsed[1:-1]))

    assert result.last_server_measurement == {"Throughput": 123}
    assert result.last_client_measurement == client[-1]
    assert fed - 1000 <= result.last_client_measurement.num_bytes <= fed
    assert result.last_client_measurement.elapsed_time == pytest.approx(0.6, abs=0.2)
    assert connection.close_calls == 1
    assert session.state is SessionState.CLOSED


async def test_server_measurements_in_order(config, recorder) -> None:
    connection = FakeConnection()
    records = [{"foo": 1}, {"foo": 2, "bar": [1, 2]}, {"foo": 3}]
    for record in records:
        connection.feed(json.dumps(record))
        connection.feed(b"\0" * 100)
    connection.peer_close()

    result = await DownloadSession(config, callbacks_for(recorder), connector=Connector(connection),
                                   duration=5.0).start()

    server = [m.server_data for m in recorder.named("measurement") if m.server_data is not None]
    assert server == records
    assert result.last_server_measurement == {"foo": 3}
    assert recorder.names().count("complete") == 1


async def test_server_closes_early(config, recorder) -> None:
    connection = FakeConnection()
    asyncio.get_running_loop().call_later(0.1, connection.peer_close)
    session = DownloadSession(config, callbacks_for(recorder), connector=Connector(connection),
                              duration=2.0)

    result = await session.start()

    assert recorder.names() == ["start", "measurement", "complete"]
    assert result.last_client_measurement.num_bytes == 0
    assert result.last_client_measurement.elapsed_time < 1.0
    await asyncio.sleep(0.1)
    assert recorder.names().count("complete") == 1


async def test_transport_error(config, recorder) -> None:
    connection = FakeConnection()
    connection.feed(b"\0" * 10)
    connection.feed(TransportError("connection reset"))

    session = DownloadSession(config, callbacks_for(recorder), connector=Connector(connection))
    result = await session.start()

    errors = recorder.named("error")
    assert len(errors) == 1
    assert isinstance(errors[0], TransportError)
    assert "complete" not in recorder.names()
    assert isinstance(result, SessionResult)
    assert session.state is SessionState.CLOSED
    assert connection.closed


async def test_malformed_server_measurement(config, recorder) -> None:
    connection = FakeConnection()
    connection.feed("{not json")

    await DownloadSession(config, callbacks_for(recorder), connector=Connector(connection)).start()

    errors = recorder.named("error")
    assert len(errors) == 1
    assert isinstance(errors[0], DecodeError)
    assert "complete" not in recorder.names()


@pytest.mark.parametrize("frame", ["null", "[1, 2]", '"text"', "42"])
async def test_server_measurement_not_an_object(config, recorder, frame) -> None:
    connection = FakeConnection()
    connection.feed(frame)
    session = DownloadSession(config, callbacks_for(recorder), connector=Connector(connection))

    result = await session.start()

    errors = recorder.named("error")
    assert [type(e) for e in errors] == [DecodeError]
    assert "not a JSON object" in str(errors[0])
    assert "complete" not in recorder.names()
    assert isinstance(result, SessionResult)
    assert result.last_server_measurement is None
    assert connection.close_calls == 1
    assert session.state is SessionState.CLOSED


async def test_client_measurements_keep_default_cadence(config, recorder) -> None:
    connection = FakeConnection()
    feeder = asyncio.ensure_future(stream(connection, [b"\0" * 100] * 200, 0.02))

    session = DownloadSession(config, callbacks_for(recorder), connector=Connector(connection),
                              duration=1.2)
    await session.start()
    await feeder

    client = [m.client_data for m in recorder.named("measurement") if m.client_data is not None]
    # samples near 0.25, 0.5, 0.75 and 1.0 s, then the final one at the deadline
    assert len(client) >= 3
    elapsed = [c.elapsed_time for c in client[:-1]]
    assert elapsed[0] >= 0.25 - 1e-9
    assert all(b - a >= 0.25 - 1e-9 for a, b in zip(elapsed, elapsed[1:]))


async def test_connect_failure(config, recorder) -> None:
    connector = Connector(fail_for="download")
    session = DownloadSession(config, callbacks_for(recorder), connector=connector)

    result = await session.start()

    assert result == SessionResult()
    assert [type(e) for e in recorder.named("error")] == [TransportError]
    assert "start" not in recorder.names()


async def test_policy_rejected(recorder) -> None:
    connector = Connector()
    result = await download(Config(), callbacks_for(recorder), connector=connector)

    assert result == SessionResult()
    assert connector.urls == []
    errors = recorder.named("error")
    assert len(errors) == 1
    assert isinstance(errors[0], PolicyError)
    assert "data policy" in str(errors[0])


async def test_unhandled_error_surfaces() -> None:
    with pytest.raises(PolicyError):
        await download(Config(), connector=Connector())


async def test_missing_url(recorder) -> None:
    config = Config(user_accepted_data_policy=True)
    connector = Connector()

    await download(config, callbacks_for(recorder), urls={"upload": "ws://x/ndt/v7/upload"},
                   connector=connector)

    assert connector.urls == []
    assert [type(e) for e in recorder.named("error")] == [DiscoveryError]


async def test_empty_discovery_is_reported_once() -> None:
    async def nothing():
        return {}

    config = Config(user_accepted_data_policy=True)
    result = await download(config, urls=nothing(), connector=Connector())
    assert result == SessionResult()


async def test_discovery_failure(recorder) -> None:
    async def broken():
        raise DiscoveryError("locate unreachable")

    config = Config(user_accepted_data_policy=True)
    connector = Connector()
    await download(config, callbacks_for(recorder), urls=broken(), connector=connector)

    assert connector.urls == []
    assert [str(e) for e in recorder.named("error")] == ["locate unreachable"]


async def test_failing_callback_still_settles(config) -> None:
    def explode(result):
        raise RuntimeError("callback bug")

    connection = FakeConnection()
    connection.peer_close()
    session = DownloadSession(config, UserCallbacks(download_complete=explode),
                              connector=Connector(connection))

    with pytest.raises(RuntimeError, match="callback bug"):
        await session.start()
    assert session.state is SessionState.CLOSED
