import asyncio
import enum
import inspect
import json
import logging

from ndt7py.callbacks import Measurement, SessionResult, StartEvent, noop, resolve
from ndt7py.constants import DURATION_DEFAULT, MEASUREMENT_INTERVAL, POLICY_MESSAGE, SUBPROTOCOL
from ndt7py.errors import DecodeError, DiscoveryError, Ndt7Error, PolicyError, TransportError
from ndt7py.locate import discover_server_urls
from ndt7py.statistics import MeasurementSampler
from ndt7py.transport import connect
from ndt7py.utils import now, policy_accepted

logger = logging.getLogger("ndt7py")


class SessionState(enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    ACTIVE = "active"
    COMPLETING = "completing"
    TIMED_OUT = "timed-out"
    ERRORED = "errored"
    CLOSED = "closed"


TRANSITIONS = {
    SessionState.IDLE: (SessionState.CONNECTING, SessionState.ERRORED),
    SessionState.CONNECTING: (SessionState.ACTIVE, SessionState.ERRORED),
    SessionState.ACTIVE: (SessionState.COMPLETING, SessionState.TIMED_OUT, SessionState.ERRORED),
    SessionState.COMPLETING: (SessionState.CLOSED,),
    SessionState.TIMED_OUT: (SessionState.CLOSED,),
    SessionState.ERRORED: (SessionState.CLOSED,),
    SessionState.CLOSED: (),
}


class MeasurementSession:
    """One direction of an ndt7 test against a single connection.

    start() runs the whole lifecycle and always returns a SessionResult. The
    session leaves ACTIVE exactly once: the first of deadline, end of the
    upload, peer close or transport error wins, later triggers are ignored.
    Errors are delivered to the error callback after the connection has been
    released, so a raising error handler surfaces from start().
    """

    role = None
    upload = False

    def __init__(self, config, callbacks=None, urls=None, connector=connect,
                 clock=now, duration=DURATION_DEFAULT, timeout=None,
                 interval=MEASUREMENT_INTERVAL):
        self.config = config
        self.callbacks = callbacks
        self.urls = urls
        self.connector = connector
        self.clock = clock
        self.duration = duration
        self.timeout = duration if timeout is None else timeout

        self.on_error = resolve("error", callbacks)
        self.on_start = resolve("%s_start" % self.role, callbacks)
        self.on_measurement = resolve("%s_measurement" % self.role, callbacks)
        self.on_complete = resolve("%s_complete" % self.role, callbacks)

        self.state = SessionState.IDLE
        self.sampler = MeasurementSampler(upload=self.upload, clock=clock, interval=interval)
        self.connection = None
        self.last_client = None
        self.last_server = None
        self.failure = None

        self._closed = False
        self._deadline = None
        self._done = None
        self._tasks = []

    @property
    def result(self):
        return SessionResult(self.last_client, self.last_server)

    def transition(self, state):
        if state not in TRANSITIONS[self.state]:
            raise RuntimeError("%s: invalid transition %s -> %s"
                               % (self.role, self.state.value, state.value))
        logger.debug("%s: %s -> %s", self.role, self.state.value, state.value)
        self.state = state

    async def start(self):
        if not policy_accepted(self.config):
            self.transition(SessionState.ERRORED)
            return self._settle(PolicyError(POLICY_MESSAGE))

        url, report = await self._resolve_url()
        if report is not None:
            self.transition(SessionState.ERRORED)
            return self._settle(*report)

        self.transition(SessionState.CONNECTING)
        logger.info("%s: connecting to %s", self.role, url)
        try:
            self.connection = await self.connector(url, SUBPROTOCOL)
        except TransportError as e:
            self.transition(SessionState.ERRORED)
            return self._settle(e)

        loop = asyncio.get_running_loop()
        self._done = asyncio.Event()
        self.transition(SessionState.ACTIVE)
        self.sampler.reset()
        self._deadline = loop.call_later(self.timeout, self._expire)
        try:
            self.on_open()
            self._tasks.append(asyncio.ensure_future(self._guard(self._receive())))
            for worker in self.workers():
                self._tasks.append(asyncio.ensure_future(self._guard(worker)))
            await self._done.wait()
        finally:
            self._deadline.cancel()
            tasks, self._tasks = self._tasks, []
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await self._close_connection()

        return self._settle(self.failure)

    def _settle(self, failure=None, report=None):
        self.transition(SessionState.CLOSED)
        if failure is None:
            return self.result
        if not isinstance(failure, Ndt7Error):
            raise failure
        logger.error("%s: %s", self.role, failure)
        (report or self.on_error)(failure)
        return self.result

    async def _resolve_url(self):
        """Returns (url, None), or (None, (error, reporter)) when unusable."""
        urls = self.urls
        discovered = urls is None or inspect.isawaitable(urls)
        if urls is None:
            urls = discover_server_urls(self.config, self.callbacks)
        if inspect.isawaitable(urls):
            try:
                urls = await urls
            except Ndt7Error as e:
                return None, (e, None)

        url = urls.get(self.role)
        if url:
            return url, None
        error = DiscoveryError("no %s URL available" % self.role)
        if discovered and not urls:
            # the locator has reported the unusable answer already
            return None, (error, resolve("error", self.callbacks, noop))
        return None, (error, None)

    def on_open(self):
        start = self.sampler.start
        self.on_start(StartEvent(start, start + self.duration))

    def workers(self):
        return []

    def stop(self):
        """Called once when the session leaves ACTIVE."""

    def on_message(self, message):
        if isinstance(message, str):
            self.on_server_message(message)

    def on_server_message(self, text):
        try:
            record = json.loads(text)
        except ValueError as e:
            raise DecodeError("invalid server measurement: %s" % e) from e
        if not isinstance(record, dict):
            raise DecodeError("server measurement is not a JSON object: %.64r" % text)
        self.last_server = record
        self.on_measurement(Measurement(server_data=record))

    def client_measurement(self, measurement):
        self.last_client = measurement
        self.on_measurement(Measurement(client_data=measurement))

    def final_measurement(self):
        raise NotImplementedError

    async def _receive(self):
        while self.state is SessionState.ACTIVE:
            message = await self.connection.recv()
            if message is None:
                logger.info("%s: connection closed by server", self.role)
                await self.conclude(SessionState.COMPLETING)
                return
            if self.state is not SessionState.ACTIVE:
                return
            self.on_message(message)

    async def _guard(self, coro):
        try:
            await coro
        except Exception as e:
            if not await self.fail(e) and not isinstance(e, Ndt7Error):
                # raised by a callback after the session concluded
                self.failure = self.failure or e

    def _expire(self):
        logger.info("%s: deadline of %.1fs reached", self.role, self.timeout)
        self._tasks.append(asyncio.ensure_future(
            self._guard(self.conclude(SessionState.TIMED_OUT))))

    async def conclude(self, state):
        """Finish successfully; returns False when already concluded."""
        if self.state is not SessionState.ACTIVE:
            return False
        self.transition(state)
        self.stop()
        self._deadline.cancel()
        final = self.final_measurement()
        await self._close_connection()
        logger.info("%s: complete after %.2fs, %d bytes, %.2f Mbps", self.role,
                    final.elapsed_time, final.num_bytes, final.mean_mbps)
        try:
            self.client_measurement(final)
            self.on_complete(self.result)
        finally:
            self._done.set()
        return True

    async def fail(self, error):
        if self.state is not SessionState.ACTIVE:
            logger.debug("%s: ignoring %r after the session concluded", self.role, error)
            return False
        self.transition(SessionState.ERRORED)
        self.failure = error
        self.stop()
        self._deadline.cancel()
        await self._close_connection()
        self._done.set()
        return True

    async def _close_connection(self):
        if self._closed or self.connection is None:
            return
        self._closed = True
        try:
            await self.connection.close()
        except TransportError as e:
            logger.debug("%s: close failed: %s", self.role, e)
