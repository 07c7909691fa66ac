#!/usr/bin/env python3

from ndt7py import __version__
from ndt7py.callbacks import UserCallbacks
from ndt7py.config import Config
from ndt7py.constants import PROTOCOL_DEFAULT, PROTOCOLS
from ndt7py.locate import discover_server_urls
from ndt7py.runner import download, run, upload
from ndt7py.statistics import SessionSummary
from ndt7py.utils import format_bytes, format_rate, parse_metadata

import asyncio
import click
import click_log
import functools
import json

from logging.handlers import TimedRotatingFileHandler


import logging
logger = logging.getLogger("ndt7py")
click_logger = click_log.basic_config(logger)


class MetadataParamType(click.ParamType):
    name = 'metadata'

    def convert(self, value, param, ctx):
        try:
            return parse_metadata([value])
        except ValueError as e:
            self.fail(str(e), param, ctx)

    def __repr__(self):
        return 'KEY=VALUE'


class AliasedGroup(click.Group):

    def get_command(self, ctx, cmd_name):
        rv = click.Group.get_command(self, ctx, cmd_name)
        if rv is not None:
            return rv
        matches = [x for x in self.list_commands(ctx)
                   if x.startswith(cmd_name)]
        if not matches:
            return None
        elif len(matches) == 1:
            return click.Group.get_command(self, ctx, matches[0])
        ctx.fail('Please be more specific \n%s' % '\n'.join(sorted(matches)))


def config_options(func):
    @click.option("--server", metavar="<host[:port]>", help='ndt7 server to use, skips discovery')
    @click.option("--protocol", type=click.Choice(PROTOCOLS), default=PROTOCOL_DEFAULT, help='WebSocket scheme')
    @click.option("--loadbalancer", metavar="<url>", help='Locate service URL')
    @click.option("--metadata", "metadata", multiple=True, type=MetadataParamType(), help='Extra key=value sent to the server (repeatable)')
    @click.option("--accept-data-policy", is_flag=True, help='Accept the M-Lab data policy (https://www.measurementlab.net/privacy/)')
    @click.option("--policy-inapplicable", is_flag=True, help='The M-Lab data policy does not apply to this client')
    @functools.wraps(func)
    def wrapper(server, protocol, loadbalancer, metadata, accept_data_policy, policy_inapplicable, **kwargs):
        merged = {}
        for item in metadata:
            merged.update(item)
        config = Config(
            user_accepted_data_policy=accept_data_policy,
            mlab_data_policy_inapplicable=policy_inapplicable,
            server=server,
            protocol=protocol,
            loadbalancer=loadbalancer,
            metadata=merged)
        return func(config, **kwargs)
    return wrapper


format_option = click.option("--format", "fmt", type=click.Choice(["human", "json"]), default="human", help='Output format')


def emit(fmt, event, payload=None):
    if fmt == "json":
        data = payload.to_dict() if hasattr(payload, "to_dict") else payload
        click.echo(json.dumps({"Event": event, "Data": data}))


def report_callbacks(fmt, summaries):
    """ Build the callbacks printing events and feeding the summaries. """

    def on_error(err):
        logger.error("%s", err)
        emit(fmt, "error", str(err))

    def on_discovery(info):
        logger.info("Locating server via %s", info["loadbalancer"])
        emit(fmt, "serverDiscovery", info)

    def on_chosen(choice):
        logger.info("Testing against %s", choice.get("machine", "<unknown>"))
        emit(fmt, "serverChosen", choice)

    def direction(name):
        summary = summaries.setdefault(name, SessionSummary(name))

        def on_start(event):
            logger.info("%s started", name.capitalize())
            emit(fmt, name + "Start", event)

        def on_measurement(measurement):
            summary.add(measurement)
            if measurement.client_data is not None:
                client = measurement.client_data
                logger.info("%s: %s %s (%5.2fs)", name, format_rate(client.mean_mbps),
                            format_bytes(client.num_bytes), client.elapsed_time)
            if measurement.server_data is not None:
                logger.debug("%s server measurement: %s", name, json.dumps(measurement.server_data))
            emit(fmt, name + "Measurement", measurement)

        def on_complete(result):
            summary.complete(result)
            logger.info("%s complete", name.capitalize())
            emit(fmt, name + "Complete", result)

        return on_start, on_measurement, on_complete

    dl_start, dl_measurement, dl_complete = direction("download")
    ul_start, ul_measurement, ul_complete = direction("upload")
    return UserCallbacks(
        error=on_error,
        server_discovery=on_discovery,
        server_chosen=on_chosen,
        download_start=dl_start,
        download_measurement=dl_measurement,
        download_complete=dl_complete,
        upload_start=ul_start,
        upload_measurement=ul_measurement,
        upload_complete=ul_complete)


def measure(config, fmt, directions):
    summaries = {name: SessionSummary(name) for name in directions}
    callbacks = report_callbacks(fmt, summaries)

    if directions == ("download", "upload"):
        asyncio.run(run(config, callbacks))
    elif directions == ("download",):
        asyncio.run(download(config, callbacks))
    else:
        asyncio.run(upload(config, callbacks))

    if fmt == "human":
        for name in directions:
            summaries[name].dump()


@click.group(cls=AliasedGroup)
@click.version_option(__version__)
@click_log.simple_verbosity_option(logger)
@click.option("-q", "--quiet", "quiet", is_flag=True)
@click.option("-l", "--logfile", "logfile", type=click.Path())
def cli(quiet, logfile):
    """Python client for the ndt7 network performance measurement protocol
       (Measurement Lab NDT, version 7)."""

    loglevel = logger.level
    if quiet:
        logger.setLevel(logging.WARNING)

    if loglevel >= logging.DEBUG and logfile:
        file_handler = TimedRotatingFileHandler(
            filename=logfile, when='midnight', backupCount=31)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        file_handler.setLevel(loglevel)
        click_logger.addHandler(file_handler)


@cli.command('run')
@config_options
@format_option
def run_command(config, fmt):
    """Download, then upload."""
    measure(config, fmt, ("download", "upload"))


@cli.command('download')
@config_options
@format_option
def download_command(config, fmt):
    measure(config, fmt, ("download",))


@cli.command('upload')
@config_options
@format_option
def upload_command(config, fmt):
    measure(config, fmt, ("upload",))


@cli.command('locate')
@config_options
def locate_command(config):
    """Print the URLs a test would use."""
    urls = asyncio.run(discover_server_urls(config, report_callbacks("human", {})))
    if not urls:
        raise click.ClickException("no server found")
    for role, url in sorted(urls.items()):
        click.echo("%-9s %s" % (role, url))


if __name__ == "__main__":
    cli()
