#!/bin/env python3
"""gerrit_checkout.py: check out the Gerrit patchset a build is testing

By default the tool writes the Jenkins `checkout` step for the patchset, so
the pipeline can run it. With `--execute` it runs the equivalent checkout
with the git CLI instead.
"""
from functools import partial
from os import environ
import json
import logging
from subprocess import TimeoutExpired

import click

from gerrit_libs.checkout import (
    CheckoutConfig, MissingCheckoutParams, gerrit_patchset_checkout,
    write_checkout_step_json,
)
from gerrit_libs.common_cli import (
    cli_with_logging_from_logger, config_opt, identity_file_opt, output_opt,
)
from gerrit_libs.gerrit import parse_gerrit_url
from gerrit_libs.git_utils import GitProcessError, checkout_gerrit_patchset
from gerrit_libs.pipeline_config import PipelineConfigError, load_pipeline_config


logger = logging.getLogger()


@click.command()
@cli_with_logging_from_logger(logger)
@config_opt
@identity_file_opt
@output_opt
@click.option(
    '--url', 'gerrit_url', metavar='URL',
    help=(
        'Repository URL shaped like scheme://name@host:port/project.'
        ' Overrides the GERRIT_* variables set by the Gerrit trigger.'
    )
)
@click.option('--ref', 'gerrit_ref_spec', help='Gerrit refspec to check out.')
@click.option('--branch', 'gerrit_branch', help='Branch of the change.')
@click.option('--credentials-id', help='Jenkins credentials to clone with.')
@click.option('--path', help='Directory to check out into.')
@click.option(
    '--merge/--no-merge', 'with_merge', default=None,
    help='Merge the patchset into its branch.'
)
@click.option(
    '--wipe-out/--no-wipe-out', 'with_wipe_out', default=None,
    help='Wipe the checkout directory first.'
)
@click.option(
    '--local-branch/--no-local-branch', 'with_local_branch', default=None,
    help='Check out the branch as a local branch.'
)
@click.option('--depth', type=int, help='Shallow clone depth.')
@click.option('--timeout', type=int, help='Timeout in minutes.')
@click.option(
    '--execute', is_flag=True,
    help='Check out with git instead of writing a pipeline checkout step.'
)
def checkout_main_cli(
    config_file, identity_file, output, gerrit_url, execute, **options
):
    """Check out a Gerrit patchset

    Values given on the command line override the configuration file, which
    overrides the build environment.
    """
    try:
        pipeline_config = load_pipeline_config(config_file)
        config = resolve_checkout_config(
            pipeline_config.checkout, gerrit_url, **options
        )
        if execute:
            revision = checkout_gerrit_patchset(
                config.validate(),
                identity_file or pipeline_config.identity_file,
            )
            click.echo(revision)
        elif output:
            gerrit_patchset_checkout(
                config, partial(write_checkout_step_json, file_name=output)
            )
        else:
            gerrit_patchset_checkout(config, print_checkout_step)
    except (
        PipelineConfigError, MissingCheckoutParams, GitProcessError,
        TimeoutExpired, ValueError,
    ) as e:
        logger.debug('Checkout failed', exc_info=True)
        raise click.ClickException(str(e))


def resolve_checkout_config(file_options, gerrit_url=None, env=environ,
                            **cli_options):
    """Merge checkout options from all their sources

    :param Mapping file_options: The `checkout` configuration file section
    :param str gerrit_url:       (Optional) A repository URL to take the
                                 Gerrit connection details from
    :param Mapping env:          The build environment
    :param cli_options:          Options given on the command line, None
                                 values are ignored

    :raises ValueError: If the URL or the options are invalid
    :rtype: CheckoutConfig
    """
    options = dict((k, v) for k, v in cli_options.items() if v is not None)
    if gerrit_url:
        gerrit_params = parse_gerrit_url(gerrit_url)
        if len(gerrit_params) != 5:
            raise ValueError(
                "Could not parse Gerrit URL: '{0}'".format(gerrit_url)
            )
        options.update(
            gerrit_scheme=gerrit_params.scheme,
            gerrit_name=gerrit_params.user,
            gerrit_host=gerrit_params.host,
            gerrit_port=gerrit_params.port,
            gerrit_project=gerrit_params.project,
        )
    base = CheckoutConfig.from_jenkins_env(env, **file_options)
    return CheckoutConfig.from_mapping(options, base)


def print_checkout_step(step):
    click.echo(json.dumps(step, indent=2))


if __name__ == '__main__':
    checkout_main_cli()
