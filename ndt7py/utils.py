import time

from urllib.parse import urlencode, urlsplit, urlunsplit

from ndt7py.constants import ROLE_PATHS


def now():
    """ Monotonic clock in seconds, the default time source of all sessions. """
    return time.monotonic()


def policy_accepted(config):
    """ Checks whether the user has accepted the M-Lab data policy, or the
        policy is not applicable to this client.
    """
    return config.user_accepted_data_policy is True or \
        config.mlab_data_policy_inapplicable is True


def build_url(protocol, server, path, metadata):
    """ Synthesize a measurement URL for an explicitly configured server.
        Works with:
            bare host names and host:port;
            servers given with a leading scheme (which is replaced).
    """
    if '://' in server:
        server = urlsplit(server).netloc
    return urlunsplit((protocol, server, path, urlencode(metadata), ''))


def role_urls(protocol, server, metadata):
    return {role: build_url(protocol, server, path, metadata)
            for role, path in ROLE_PATHS.items()}


def with_query(url, metadata):
    """ Replace the query string of url by the encoded metadata. """
    scheme, netloc, path, _, fragment = urlsplit(url)
    return urlunsplit((scheme, netloc, path, urlencode(metadata), fragment))


def parse_metadata(items):
    """ Parse key=value strings into a dict, last assignment wins. """
    metadata = {}
    for item in items:
        key, sep, value = item.partition('=')
        if not sep or not key:
            raise ValueError("metadata must be given as key=value: %r" % item)
        metadata[key.strip()] = value.strip()
    return metadata


def generate_zero_bytes(nbr):
    return bytes(nbr)


def format_rate(mbps):
    if mbps is None:
        return "%10s" % "-"
    if mbps >= 1000:
        return "%7.2fGbps" % (mbps / 1000)
    if mbps >= 1:
        return "%7.2fMbps" % mbps
    return "%7.1fkbps" % (mbps * 1000)


def format_bytes(nbr):
    if nbr is None:
        return "%10s" % "-"
    if nbr >= 1 << 30:
        return "%8.2fGB" % (nbr / float(1 << 30))
    if nbr >= 1 << 20:
        return "%8.2fMB" % (nbr / float(1 << 20))
    if nbr >= 1 << 10:
        return "%8.1fKB" % (nbr / float(1 << 10))
    return "%9dB" % nbr
