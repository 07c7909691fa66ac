import asyncio
import logging

from types import MappingProxyType

import aiohttp

from ndt7py import __version__
from ndt7py.callbacks import noop, resolve
from ndt7py.constants import CLIENT_LIBRARY_NAME, DISCOVERY_TIMEOUT, LOCATE_URL_DEFAULT, ROLE_PATHS
from ndt7py.errors import DiscoveryError
from ndt7py.utils import role_urls, with_query

logger = logging.getLogger("ndt7py")

STATIC_METADATA = {
    "client_library_name": CLIENT_LIBRARY_NAME,
    "client_library_version": __version__,
}


def request_metadata(config):
    metadata = dict(config.metadata)
    metadata.update(STATIC_METADATA)
    return metadata


async def fetch_json(http, url):
    try:
        async with http.get(url) as response:
            response.raise_for_status()
            return await response.json(content_type=None)
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
        raise DiscoveryError("locate request to %s failed: %s" % (url, e)) from e


async def discover_server_urls(config, callbacks=None, http=None):
    """Resolve the download and upload URLs for config.

    With config.server set the URLs are built locally and no request is made.
    Otherwise the load balancer (M-Lab locate service by default) is asked
    once and its first result is used. Returns a read-only mapping from
    "download"/"upload" to URL, empty when the answer could not be used.
    """
    error = resolve("error", callbacks)
    server_discovery = resolve("server_discovery", callbacks, noop)
    server_chosen = resolve("server_chosen", callbacks, noop)

    metadata = request_metadata(config)

    if config.server:
        urls = role_urls(config.protocol, config.server, metadata)
        logger.info("Using configured server %s", config.server)
        return MappingProxyType(urls)

    lb_url = with_query(config.loadbalancer or LOCATE_URL_DEFAULT, metadata)
    server_discovery({"loadbalancer": lb_url})
    logger.info("Discovering server via %s", lb_url)

    if http is None:
        timeout = aiohttp.ClientTimeout(total=DISCOVERY_TIMEOUT)
        async with aiohttp.ClientSession(timeout=timeout) as http:
            js = await fetch_json(http, lb_url)
    else:
        js = await fetch_json(http, lb_url)

    if not isinstance(js, dict) or "results" not in js:
        error(DiscoveryError("Could not understand response from %s: %s" % (lb_url, js)))
        return MappingProxyType({})
    results = js["results"]
    if not isinstance(results, list) or not results:
        error(DiscoveryError("No server available from %s" % lb_url))
        return MappingProxyType({})

    # TODO: fall back to the next result when the first server cannot be reached
    choice = results[0]
    if not isinstance(choice, dict) or not isinstance(choice.get("urls", {}), dict):
        error(DiscoveryError("Could not understand server entry from %s: %s" % (lb_url, choice)))
        return MappingProxyType({})
    server_chosen(choice)
    logger.info("Server chosen: %s", choice.get("machine", "<unknown>"))

    candidates = choice.get("urls") or {}
    urls = {}
    for role, path in ROLE_PATHS.items():
        url = candidates.get("%s://%s" % (config.protocol, path))
        if url:
            urls[role] = url
    return MappingProxyType(urls)
