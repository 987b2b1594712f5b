"""pipeline_config.py - Configuration file for the Gerrit pipeline tools

The file is YAML with up to three sections, for example:

    checkout:
      credentials_id: ci-gerrit
      with_merge: true
      timeout: 30
    gerrit:
      identity_file: ~/.ssh/ci_gerrit
    jenkins:
      user: ci-bot
      token: 1234abcd
"""
from collections import namedtuple
from collections.abc import Mapping
import errno
import logging
import os

import yaml
from xdg.BaseDirectory import xdg_config_home


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = os.path.join(xdg_config_home, 'gerrit_pipeline.yaml')


class PipelineConfigError(Exception):
    pass


class PipelineConfigIOError(PipelineConfigError):
    pass


class PipelineConfigSyntaxError(PipelineConfigError):
    pass


class PipelineConfig(namedtuple('_PipelineConfig', (
    'checkout', 'gerrit', 'jenkins',
))):
    def __new__(cls, checkout=None, gerrit=None, jenkins=None):
        return super().__new__(
            cls, checkout or {}, gerrit or {}, jenkins or {}
        )

    @property
    def identity_file(self):
        identity_file = self.gerrit.get('identity_file')
        if identity_file:
            return os.path.expanduser(identity_file)
        return None

    @property
    def jenkins_auth(self):
        """Credentials for the Jenkins API as a (user, token) pair or None"""
        if self.jenkins.get('user') and self.jenkins.get('token'):
            return (self.jenkins['user'], self.jenkins['token'])
        return None


def load_pipeline_config(config_file=None):
    """Load the pipeline configuration file

    :param str config_file: (Optional) Path of the file to load. If not
                            given, $XDG_CONFIG_HOME/gerrit_pipeline.yaml is
                            used, and it is fine for it to be missing.

    :raises PipelineConfigIOError:     If the file could not be read
    :raises PipelineConfigSyntaxError: If the file content is invalid
    :rtype: PipelineConfig
    """
    explicit = config_file is not None
    if not explicit:
        config_file = DEFAULT_CONFIG_FILE
    try:
        with open(config_file, 'r') as cf:
            data = yaml.safe_load(cf)
    except IOError as e:
        if not explicit and e.errno == errno.ENOENT:
            logger.debug("No configuration file at: '%s'", config_file)
            return PipelineConfig()
        raise PipelineConfigIOError(
            "Failed to read config: '{0}'".format(e)
        )
    except yaml.YAMLError as e:
        raise PipelineConfigSyntaxError(
            "Failed to parse config: '{0}'".format(e)
        )
    logger.debug("Loaded configuration from: '%s'", config_file)
    if data is None:
        return PipelineConfig()
    if not isinstance(data, Mapping):
        raise PipelineConfigSyntaxError(
            "Config in '{0}' must be a mapping".format(config_file)
        )
    unknown = set(data) - set(PipelineConfig._fields)
    if unknown:
        raise PipelineConfigSyntaxError(
            "Unknown config sections in '{0}': {1}".format(
                config_file, ', '.join(sorted(unknown))
            )
        )
    for section, content in data.items():
        if content is not None and not isinstance(content, Mapping):
            raise PipelineConfigSyntaxError(
                "Config section '{0}' must be a mapping".format(section)
            )
    return PipelineConfig(**data)
