import logging

from ndt7py.constants import DOWNLOAD
from ndt7py.session import MeasurementSession

logger = logging.getLogger("ndt7py")


class DownloadSession(MeasurementSession):
    """Receives from the server until the deadline or the server closes.

    Every frame adds its size to the byte counter; text frames also carry a
    server measurement. A client-side sample is emitted on arrival whenever
    the sampling interval has passed.
    """

    role = DOWNLOAD

    def __init__(self, *args, **kwargs):
        MeasurementSession.__init__(self, *args, **kwargs)
        self.total = 0

    def on_message(self, message):
        if isinstance(message, str):
            self.total += len(message.encode("utf-8"))
        else:
            self.total += len(message)

        measurement = self.sampler.poll(self.total)
        if measurement is not None:
            self.client_measurement(measurement)

        MeasurementSession.on_message(self, message)

    def final_measurement(self):
        return self.sampler.measure(self.total)
