#!/usr/bin/env python
"""jenkins_builds.py - Find the Jenkins builds a Gerrit change triggered
"""
from collections import namedtuple
import json
import logging

import requests
from requests.exceptions import RequestException


logger = logging.getLogger(__name__)

GERRIT_TRIGGER_PKG = 'com.sonyericsson.hudson.plugins.gerrit.trigger'
GERRIT_CAUSE_CLASSES = frozenset((
    GERRIT_TRIGGER_PKG + '.hudsontrigger.GerritCause',
    GERRIT_TRIGGER_PKG + '.hudsontrigger.GerritUserCause',
    GERRIT_TRIGGER_PKG + '.hudsontrigger.GerritManualCause',
))
PATCHSET_CREATED = 'patchset-created'
BUILDS_TREE = (
    'builds[number,url,'
    'actions[causes[_class,shortDescription],parameters[name,value]]]'
)
HTTP_TIMEOUT = 30


class JenkinsAPIError(Exception):
    pass


class GerritTriggerCause(namedtuple('_GerritTriggerCause', (
    'change_number', 'patchset_number', 'event_kind',
))):
    """A build started by the Gerrit Trigger plugin

    Change and patchset numbers are kept as strings, like Gerrit events
    carry them.
    """


class OtherCause(namedtuple('_OtherCause', ('description',))):
    """A build started by anything other than Gerrit"""


class BuildRecord(namedtuple('_BuildRecord', ('number', 'url', 'cause'))):
    def as_dict(self):
        return dict(
            number=self.number,
            url=self.url,
            cause=dict(self.cause._asdict(), type=type(self.cause).__name__),
        )


class BuildsList(list):
    """A list of BuildRecord objects"""
    default_json_file = 'gerrit_builds.json'

    def as_dict_list(self):
        return list(b.as_dict() for b in self)

    def as_json_file(self, file_name=None):
        if file_name is None:
            file_name = self.default_json_file
        with open(file_name, 'w') as fil:
            json.dump(self.as_dict_list(), fil, indent=2)


def _param_str(value):
    return None if value is None else str(value)


def cause_from_build_json(build):
    """Extract the cause of a build from its Jenkins JSON API data

    Only the first cause of a build is looked at.

    :param dict build: A build structure as returned by the Jenkins API

    :rtype: GerritTriggerCause or OtherCause
    """
    actions = [action for action in build.get('actions') or [] if action]
    causes = next(
        (action['causes'] for action in actions if action.get('causes')), []
    )
    if not causes:
        return OtherCause(None)
    cause = causes[0]
    if cause.get('_class') not in GERRIT_CAUSE_CLASSES:
        return OtherCause(cause.get('shortDescription'))
    params = dict(
        (param['name'], param.get('value'))
        for action in actions for param in action.get('parameters') or []
    )
    return GerritTriggerCause(
        change_number=_param_str(params.get('GERRIT_CHANGE_NUMBER')),
        patchset_number=_param_str(params.get('GERRIT_PATCHSET_NUMBER')),
        event_kind=params.get('GERRIT_EVENT_TYPE'),
    )


def get_job_builds(job_url, auth=None, timeout=HTTP_TIMEOUT):
    """Load the build history of a job from the Jenkins JSON API

    :param str job_url:   The URL of the Jenkins job
    :param tuple auth:    (Optional) A (user, API token) pair
    :param int timeout:   HTTP timeout in seconds

    :raises JenkinsAPIError: If the data could not be fetched or parsed
    :rtype: BuildsList
    """
    api_url = job_url.rstrip('/') + '/api/json'
    logger.debug("Fetching builds from: '%s'", api_url)
    try:
        resp = requests.get(
            api_url, params=dict(tree=BUILDS_TREE), auth=auth,
            timeout=timeout,
        )
        resp.raise_for_status()
        data = resp.json()
    except (RequestException, ValueError) as e:
        raise JenkinsAPIError(
            "Failed to get builds of '{0}': {1}".format(job_url, e)
        ) from e
    return BuildsList(
        BuildRecord(
            number=build['number'],
            url=build.get('url'),
            cause=cause_from_build_json(build),
        )
        for build in data.get('builds') or []
    )


def get_gerrit_triggered_builds(all_builds, gerrit_change,
                                exclude_patchset=None):
    """Select the builds that were triggered by patchsets of a given change

    :param Iterable all_builds:   BuildRecord objects of some job
    :param int gerrit_change:     The Gerrit change number
    :param int exclude_patchset:  (Optional) A patchset number whose builds
                                  are left out. None or 0 excludes nothing.

    :rtype: BuildsList
    """
    change = str(gerrit_change)
    excluded = None
    if exclude_patchset not in (None, 0, '0', ''):
        excluded = str(exclude_patchset)

    def _is_requested(build):
        cause = build.cause
        if not isinstance(cause, GerritTriggerCause):
            return False
        if cause.event_kind != PATCHSET_CREATED:
            return False
        if cause.change_number != change:
            return False
        return excluded is None or cause.patchset_number != excluded

    builds = BuildsList(filter(_is_requested, all_builds))
    logger.info("Found %d build(s) triggered by change '%s'",
                len(builds), change)
    return builds
