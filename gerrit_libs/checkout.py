#!/usr/bin/env python
"""checkout.py - Build Jenkins SCM checkout steps for Gerrit patchsets

The steps built here are meant to be handed over to a Jenkins pipeline, for
example:

    sh 'gerrit-checkout --merge --output gerrit_checkout.json'
    def step = readJSON(file: 'gerrit_checkout.json')
    dir(step.dir ?: '.') { checkout(step.scm) }
"""
import json
import logging
from collections import namedtuple
import os
from os import environ

from gerrit_libs.gerrit import parse_gerrit_url

logger = logging.getLogger(__name__)

DEFAULT_STEP_JSON_FILE = 'gerrit_checkout.json'


class MissingCheckoutParams(ValueError):
    def __init__(self, params):
        super(MissingCheckoutParams, self).__init__(
            'Cannot perform gerrit checkout, missed config options: '
            + ', '.join(params)
        )
        self.params = list(params)


_CHECKOUT_DEFAULTS = (
    ('credentials_id', ''),
    ('with_merge', False),
    ('with_wipe_out', False),
    ('with_local_branch', False),
    ('gerrit_scheme', ''),
    ('gerrit_ref_spec', ''),
    ('gerrit_name', ''),
    ('gerrit_host', ''),
    ('gerrit_port', ''),
    ('gerrit_project', ''),
    ('gerrit_branch', ''),
    ('path', ''),
    ('depth', 0),
    ('timeout', 20),
    ('extra_extensions', ()),
)


class CheckoutConfig(namedtuple(
    '_CheckoutConfig',
    [name for name, _ in _CHECKOUT_DEFAULTS],
    defaults=[default for _, default in _CHECKOUT_DEFAULTS],
)):
    """All the options for checking out a Gerrit patchset

    :param str credentials_id:   Jenkins credentials to clone with. If empty,
                                 an anonymous clone URL is used.
    :param bool with_merge:      Merge the patchset into `gerrit_branch`
    :param bool with_wipe_out:   Wipe the workspace before cloning
    :param bool with_local_branch: Check out `gerrit_branch` as a local
                                 branch instead of a detached HEAD
    :param str path:             Directory to check out into, relative to
                                 the workspace. Empty for the workspace root.
    :param int depth:            Shallow clone depth, 0 for a full clone
    :param int timeout:          Clone and checkout timeout in minutes
    :param tuple extra_extensions: Extra GitSCM extension structures to
                                 append to the default ones

    The `gerrit_*` fields match the GERRIT_* variables the Gerrit Trigger
    plugin sets in the build environment.
    """
    REQUIRED = (
        'gerrit_scheme', 'gerrit_name', 'gerrit_host', 'gerrit_port',
        'gerrit_project', 'gerrit_branch',
    )
    ENV_VARS = {
        'gerrit_scheme': 'GERRIT_SCHEME',
        'gerrit_ref_spec': 'GERRIT_REFSPEC',
        'gerrit_name': 'GERRIT_NAME',
        'gerrit_host': 'GERRIT_HOST',
        'gerrit_port': 'GERRIT_PORT',
        'gerrit_project': 'GERRIT_PROJECT',
        'gerrit_branch': 'GERRIT_BRANCH',
    }
    # Option names used by pipeline code that passes configuration maps
    CAMEL_CASE_NAMES = {
        'credentialsId': 'credentials_id',
        'withMerge': 'with_merge',
        'withWipeOut': 'with_wipe_out',
        'withLocalBranch': 'with_local_branch',
        'gerritScheme': 'gerrit_scheme',
        'gerritRefSpec': 'gerrit_ref_spec',
        'gerritName': 'gerrit_name',
        'gerritHost': 'gerrit_host',
        'gerritPort': 'gerrit_port',
        'gerritProject': 'gerrit_project',
        'gerritBranch': 'gerrit_branch',
        'extraScmExtensions': 'extra_extensions',
    }

    @classmethod
    def from_jenkins_env(cls, env=environ, **options):
        """Resolve the configuration of the current Gerrit-triggered build

        :param Mapping env: The build environment
        :param options:     Explicit option values. These always win over
                            the environment, empty environment variables
                            are ignored.

        :rtype: CheckoutConfig
        """
        values = dict(
            (field, env[var]) for field, var in cls.ENV_VARS.items()
            if env.get(var)
        )
        values.update(options)
        return cls.from_mapping(values)

    @classmethod
    def from_mapping(cls, mapping, base=None):
        """Create a configuration from a generic mapping

        :param Mapping mapping:     Option values keyed by field name or by
                                    the pipeline camelCase option name
        :param CheckoutConfig base: (Optional) Configuration to take values
                                    missing from `mapping` from

        Null `depth`, `timeout` and `extra_extensions` values mean the field
        default. Null `gerrit_*` values are kept so validation reports them.

        :raises ValueError: If unknown options are given or `depth` or
                            `timeout` is not an integer
        :rtype: CheckoutConfig
        """
        values = {}
        unknown = []
        for key, value in mapping.items():
            field = cls.CAMEL_CASE_NAMES.get(key, key)
            if field not in cls._fields:
                unknown.append(key)
                continue
            values[field] = value
        if unknown:
            raise ValueError(
                'Unknown checkout options: ' + ', '.join(sorted(unknown))
            )
        for field in ('depth', 'timeout', 'extra_extensions'):
            if field in values and values[field] is None:
                values[field] = cls._field_defaults[field]
        if 'depth' in values:
            values['depth'] = int(values['depth'])
        if 'timeout' in values:
            values['timeout'] = int(values['timeout'])
        if values.get('gerrit_port') is not None:
            values['gerrit_port'] = str(values['gerrit_port'])
        if 'extra_extensions' in values:
            values['extra_extensions'] = tuple(values['extra_extensions'])
        if base is None:
            return cls(**values)
        return base._replace(**values)

    def invalid_params(self):
        """List the required options that are missing or blank

        :rtype: list
        """
        return [
            name for name in self.REQUIRED
            if getattr(self, name) in (None, '')
        ]

    def validate(self):
        invalid = self.invalid_params()
        if invalid:
            raise MissingCheckoutParams(invalid)
        return self

    def remote_url(self):
        """The URL to clone from

        Anonymous HTTP(S) access is used when no credentials are configured,
        SSH access otherwise.
        """
        if not self.credentials_id:
            return '{0}://{1}/{2}'.format(
                self.gerrit_scheme, self.gerrit_host, self.gerrit_project
            )
        project = self.gerrit_project
        if not project.endswith('.git'):
            project += '.git'
        return 'ssh://{0}@{1}:{2}/{3}'.format(
            self.gerrit_name, self.gerrit_host, self.gerrit_port, project
        )

    def user_remote_config(self):
        remote = dict(name='gerrit', url=self.remote_url())
        if self.gerrit_ref_spec:
            remote['refspec'] = self.gerrit_ref_spec
        if self.credentials_id:
            remote['credentialsId'] = self.credentials_id
        return remote

    def scm_extensions(self):
        extensions = [
            {'$class': 'CleanCheckout'},
            {
                '$class': 'BuildChooserSetting',
                'buildChooser': {'$class': 'GerritTriggerBuildChooser'},
            },
            {'$class': 'CheckoutOption', 'timeout': self.timeout},
            {
                '$class': 'CloneOption', 'depth': self.depth,
                'noTags': False, 'reference': '',
                'shallow': self.depth > 0, 'timeout': self.timeout,
            },
        ]
        if self.with_merge:
            extensions.append({
                '$class': 'PreBuildMerge',
                'options': {
                    'fastForwardMode': 'FF',
                    'mergeRemote': 'gerrit',
                    'mergeStrategy': 'default',
                    'mergeTarget': self.gerrit_branch,
                },
            })
        if self.with_wipe_out:
            extensions.append({'$class': 'WipeWorkspace'})
        if self.with_local_branch:
            extensions.append({
                '$class': 'LocalBranch', 'localBranch': self.gerrit_branch,
            })
        extensions.extend(self.extra_extensions)
        return extensions

    def scm_step(self):
        """Build the GitSCM structure for the pipeline `checkout` step

        :raises MissingCheckoutParams: If required options are missing
        :rtype: dict
        """
        self.validate()
        return {
            '$class': 'GitSCM',
            'branches': [{'name': self.gerrit_branch}],
            'extensions': self.scm_extensions(),
            'userRemoteConfigs': [self.user_remote_config()],
        }

    def checkout_step(self):
        step = dict(scm=self.scm_step())
        if self.path:
            step['dir'] = self.path
        return step


def write_checkout_step_json(step, file_name=None):
    """Save a checkout step where the pipeline can `readJSON` it"""
    if file_name is None:
        file_name = DEFAULT_STEP_JSON_FILE
    with open(file_name, 'w') as fil:
        json.dump(step, fil, indent=2)
    logger.info("Checkout step written to: '%s'", file_name)


def clean_checkout_step_json(file_name=None):
    if file_name is None:
        file_name = DEFAULT_STEP_JSON_FILE
    if os.path.exists(file_name):
        os.unlink(file_name)


def gerrit_patchset_checkout(config, checkout_func=write_checkout_step_json):
    """Check out a Gerrit patchset

    :param CheckoutConfig config:  The checkout options
    :param Callable checkout_func: Called with the checkout step structure
                                   to perform (or record) the checkout

    :raises MissingCheckoutParams: If required options are missing
    :rtype: bool
    :returns: True
    """
    step = config.checkout_step()
    logger.info(
        "Checking out '%s' of '%s' from '%s'",
        config.gerrit_ref_spec or config.gerrit_branch,
        config.gerrit_project, config.gerrit_host,
    )
    checkout_func(step)
    return True


def gerrit_patchset_checkout_from_url(
    gerrit_url, gerrit_ref, gerrit_branch, credentials_id,
    checkout_func=write_checkout_step_json, path='', **options
):
    """Check out a Gerrit patchset given the URL of its repository

    :param str gerrit_url:     A `scheme://name@host:port/project` URL
    :param str gerrit_ref:     The Gerrit refspec to check out
    :param str gerrit_branch:  The branch the change belongs to
    :param str credentials_id: Jenkins credentials to clone with
    :param Callable checkout_func: See `gerrit_patchset_checkout`
    :param str path:           (Optional) Directory to check out into
    :param options:            Other `CheckoutConfig` options

    :rtype: bool
    :returns: False if the URL could not be parsed, True otherwise
    """
    gerrit_params = parse_gerrit_url(gerrit_url)
    if len(gerrit_params) != 5:
        logger.warning("Could not parse Gerrit URL: '%s'", gerrit_url)
        return False
    config = CheckoutConfig(
        credentials_id=credentials_id,
        gerrit_branch=gerrit_branch,
        gerrit_ref_spec=gerrit_ref,
        gerrit_scheme=gerrit_params.scheme,
        gerrit_name=gerrit_params.user,
        gerrit_host=gerrit_params.host,
        gerrit_port=gerrit_params.port,
        gerrit_project=gerrit_params.project,
        path=path,
        **options
    )
    return gerrit_patchset_checkout(config, checkout_func)
