import asyncio
import logging

from ndt7py.constants import (DURATION_DEFAULT, GROWTH_FACTOR, INFLIGHT_MESSAGES, INITIAL_MESSAGE_SIZE,
                              MAX_MESSAGE_SIZE, TIMEOUT_DEFAULT, UPLOAD)
from ndt7py.session import MeasurementSession, SessionState
from ndt7py.utils import generate_zero_bytes, now

logger = logging.getLogger("ndt7py")


class UploadPacer:
    """Send loop of the upload direction.

    The message starts small so slow links are measured with a fine
    granularity, and doubles each time the bytes that actually left the
    client reach GROWTH_FACTOR times the current message size: after the
    first 16 messages, then after every 8 messages of the doubled size, up to
    max_size. A message is only queued while fewer than INFLIGHT_MESSAGES
    messages are buffered, which bounds the send buffer at
    (INFLIGHT_MESSAGES + 1) * max_size.

    Each step does at most one send and then yields to the event loop, so
    frames from the server are processed between steps.
    """

    def __init__(self, connection, sampler, end, on_measurement=None, clock=now,
                 initial_size=INITIAL_MESSAGE_SIZE, max_size=MAX_MESSAGE_SIZE):
        self.connection = connection
        self.sampler = sampler
        self.end = end
        self.on_measurement = on_measurement
        self.clock = clock
        self.max_size = max_size
        self.message = generate_zero_bytes(initial_size)
        self.total = 0
        self.running = True

    @property
    def size(self):
        return len(self.message)

    def next_increment(self):
        if self.size >= self.max_size:
            return None
        return GROWTH_FACTOR * self.size

    def measure(self, t=None):
        return self.sampler.measure(self.total, self.connection.buffered_amount, t)

    async def step(self):
        """One iteration; returns False once sending is over."""
        t = self.clock()
        if not self.running or t >= self.end:
            return False

        increment = self.next_increment()
        if increment is not None and self.total - self.connection.buffered_amount >= increment:
            self.message = generate_zero_bytes(min(self.size * 2, self.max_size))
            logger.debug("upload: message size %d bytes", self.size)

        if self.connection.buffered_amount < INFLIGHT_MESSAGES * self.size:
            if not await self.connection.send(self.message):
                logger.info("upload: connection closed while sending")
                return False
            self.total += self.size
            if not self.running:
                return False

        measurement = self.sampler.poll(self.total, self.connection.buffered_amount, t)
        if measurement is not None and self.on_measurement is not None:
            self.on_measurement(measurement)
        return True

    async def run(self):
        while await self.step():
            await asyncio.sleep(0)


class UploadSession(MeasurementSession):
    role = UPLOAD
    upload = True

    def __init__(self, *args, **kwargs):
        # the pacer ends the test after duration, the timer is a safety net
        duration = kwargs.get("duration", DURATION_DEFAULT)
        kwargs.setdefault("timeout", duration + TIMEOUT_DEFAULT - DURATION_DEFAULT)
        MeasurementSession.__init__(self, *args, **kwargs)
        self.pacer = None

    def on_open(self):
        start = self.sampler.start
        self.pacer = UploadPacer(self.connection, self.sampler, start + self.duration,
                                 on_measurement=self.client_measurement, clock=self.clock)
        MeasurementSession.on_open(self)

    def stop(self):
        if self.pacer is not None:
            self.pacer.running = False

    def workers(self):
        return [self._send()]

    async def _send(self):
        await self.pacer.run()
        await self.conclude(SessionState.COMPLETING)

    def final_measurement(self):
        return self.pacer.measure()
