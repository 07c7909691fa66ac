import asyncio
import logging

from ndt7py.callbacks import SessionResult, resolve
from ndt7py.constants import POLICY_MESSAGE
from ndt7py.download import DownloadSession
from ndt7py.errors import PolicyError
from ndt7py.locate import discover_server_urls
from ndt7py.upload import UploadSession
from ndt7py.utils import policy_accepted

logger = logging.getLogger("ndt7py")


async def download(config, callbacks=None, urls=None, **kwargs):
    """Run the download direction.

    urls is a mapping of role to URL, or an awaitable resolving to one; without
    it the server is discovered first. Keyword arguments are passed to
    DownloadSession (connector, clock, duration, ...).
    """
    return await DownloadSession(config, callbacks, urls, **kwargs).start()


async def upload(config, callbacks=None, urls=None, **kwargs):
    """Run the upload direction, see download()."""
    return await UploadSession(config, callbacks, urls, **kwargs).start()


async def run(config, callbacks=None, **kwargs):
    """Discovery, then download, then upload.

    Discovery starts in the background right away; both directions wait for
    its result. A failure of one direction is logged and does not prevent the
    other one from running. Returns the SessionResult of each direction, None
    for a direction that raised.
    """
    if not policy_accepted(config):
        logger.error("Not running: %s", POLICY_MESSAGE)
        try:
            resolve("error", callbacks)(PolicyError(POLICY_MESSAGE))
        except Exception as e:
            logger.error("Error during run: %s", e)
        return {"download": SessionResult(), "upload": SessionResult()}

    urls = asyncio.ensure_future(discover_server_urls(config, callbacks))
    results = {}
    try:
        for name, direction in (("download", download), ("upload", upload)):
            try:
                results[name] = await direction(config, callbacks, urls, **kwargs)
            except Exception as e:
                logger.error("Error during %s: %s", name, e)
                results[name] = None
    finally:
        if not urls.done():
            urls.cancel()
    return results
