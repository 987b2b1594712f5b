#!/bin/env python3
"""gerrit_change.py: show a Gerrit change and check its approvals
"""
import json
import logging
from subprocess import CalledProcessError

import click

from gerrit_libs.change_report import render_change_summary
from gerrit_libs.common_cli import (
    cli_with_logging_from_logger, config_opt, identity_file_opt,
)
from gerrit_libs.gerrit import (
    DEFAULT_SSH_PORT, GerritQueryError, GerritServer, ensure_known_hosts,
    patchset_has_approval,
)
from gerrit_libs.pipeline_config import PipelineConfigError, load_pipeline_config


logger = logging.getLogger()

# 1 is taken by errors and 2 by click usage errors
APPROVAL_NOT_FOUND_EXIT = 3


@click.command()
@cli_with_logging_from_logger(logger)
@config_opt
@identity_file_opt
@click.argument('change', envvar='GERRIT_CHANGE_NUMBER', type=int)
@click.option(
    '--host', envvar='GERRIT_HOST', required=True, help='Gerrit server.'
)
@click.option(
    '--port', envvar='GERRIT_PORT', type=int, default=DEFAULT_SSH_PORT,
    show_default=True, help='Gerrit SSH port.'
)
@click.option('--user', envvar='GERRIT_NAME', help='Gerrit user name.')
@click.option(
    '--current-patch-set', is_flag=True,
    help='Include the current patchset and its approvals.'
)
@click.option(
    '--has-approval', metavar='TYPE[=VALUE]',
    help=(
        'Exit with status 3 unless the current patchset has the given'
        ' approval (status 1 means the query failed). VALUE may be an exact value, "+" for any positive value'
        ' or "-" for any negative value. Without VALUE any vote matches.'
    )
)
@click.option(
    '--format', 'output_format', type=click.Choice(['json', 'text']),
    default='json', show_default=True, help='Output format.'
)
def change_main_cli(
    config_file, identity_file, change, host, port, user, current_patch_set,
    has_approval, output_format,
):
    """Query CHANGE from Gerrit over SSH"""
    try:
        pipeline_config = load_pipeline_config(config_file)
        server = GerritServer(
            host, port, user,
            identity_file or pipeline_config.identity_file,
        )
        matched = change_main(
            server, change, current_patch_set, has_approval, output_format
        )
    except (
        PipelineConfigError, GerritQueryError, CalledProcessError, ValueError,
    ) as e:
        logger.debug('Gerrit query failed', exc_info=True)
        raise click.ClickException(str(e))
    if not matched:
        click.get_current_context().exit(APPROVAL_NOT_FOUND_EXIT)


def change_main(server, change_number, include_current_patchset=False,
                has_approval=None, output_format='json'):
    """Print a change and optionally check it for an approval

    :param GerritServer server:          The Gerrit server to query
    :param int change_number:            The change to look up
    :param bool include_current_patchset: Include the current patchset
    :param str has_approval:             (Optional) `TYPE[=VALUE]` approval
                                         to look for on the current patchset
    :param str output_format:            'json' or 'text'

    :raises ValueError: If the change does not exist
    :rtype: bool
    :returns: Whether the approval was found. True if none was asked for.
    """
    if has_approval:
        include_current_patchset = True
    ensure_known_hosts(server.host, server.port)
    change = server.query_change(change_number, include_current_patchset)
    if change is None:
        raise ValueError(
            "Change '{0}' not found on '{1}'".format(change_number, server.host)
        )
    if output_format == 'text':
        click.echo(render_change_summary(change))
    else:
        click.echo(json.dumps(change.as_json(), indent=2))
    if not has_approval:
        return True
    approval_type, _, approval_value = has_approval.partition('=')
    matched = patchset_has_approval(
        change.current_patchset, approval_type, approval_value
    )
    logger.info(
        "Approval '%s' %s on change '%s'",
        has_approval, 'found' if matched else 'not found', change_number
    )
    return matched


if __name__ == '__main__':
    change_main_cli()
