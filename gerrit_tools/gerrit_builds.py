#!/bin/env python3
"""gerrit_builds.py: list the builds of a job that a Gerrit change triggered
"""
import json
import logging

import click

from gerrit_libs.common_cli import (
    cli_with_logging_from_logger, config_opt, output_opt,
)
from gerrit_libs.jenkins_builds import (
    JenkinsAPIError, get_gerrit_triggered_builds, get_job_builds,
)
from gerrit_libs.pipeline_config import PipelineConfigError, load_pipeline_config


logger = logging.getLogger()


@click.command()
@cli_with_logging_from_logger(logger)
@config_opt
@output_opt
@click.argument('job_url', envvar='JOB_URL')
@click.argument('change', envvar='GERRIT_CHANGE_NUMBER')
@click.option(
    '--exclude-patchset', type=int,
    help='Leave out builds of this patchset, e.g. the one being tested.'
)
def builds_main_cli(config_file, output, job_url, change, exclude_patchset):
    """List the builds of JOB_URL that patchsets of CHANGE triggered

    You can specify the positional arguments as environment variables or
    pass them as usual.
    """
    try:
        pipeline_config = load_pipeline_config(config_file)
        builds = builds_main(
            job_url, change, exclude_patchset, pipeline_config.jenkins_auth
        )
    except (PipelineConfigError, JenkinsAPIError) as e:
        logger.debug('Listing builds failed', exc_info=True)
        raise click.ClickException(str(e))
    if output:
        builds.as_json_file(output)
    else:
        click.echo(json.dumps(builds.as_dict_list(), indent=2))


def builds_main(job_url, change, exclude_patchset=None, auth=None):
    """Find the Gerrit-triggered builds of a job

    :param str job_url:          The URL of the Jenkins job
    :param str change:           The Gerrit change number
    :param int exclude_patchset: (Optional) Patchset to leave out
    :param tuple auth:           (Optional) Jenkins (user, token) pair

    :rtype: BuildsList
    """
    all_builds = get_job_builds(job_url, auth=auth)
    return get_gerrit_triggered_builds(all_builds, change, exclude_patchset)


if __name__ == '__main__':
    builds_main_cli()
