#!/usr/bin/env python
"""gerrit.py - Objects and functions to work with Gerrit
"""
import json
import logging
import os
import re
from collections import namedtuple
from os import environ
from subprocess import PIPE, CalledProcessError, Popen

logger = logging.getLogger(__name__)

DEFAULT_SSH_PORT = 29418

# Every group is greedy and the pattern is not anchored, so delimiters that
# appear inside a component move the split point. Callers rely on this.
GERRIT_URL_PATTERN = re.compile(r'(.+)://(.+)@(.+):(.+)/(.+)')


class ConnectionDescriptor(namedtuple('_ConnectionDescriptor', (
    'scheme', 'user', 'host', 'port', 'project',
))):
    """The parts of a `scheme://user@host:port/project` repository URL"""


def parse_gerrit_url(url):
    """Split a Gerrit repository URL into its parts

    :param str url: A URL shaped like `scheme://user@host:port/project`

    Nothing is validated or normalized. Extra delimiters inside a part are
    not escaped, so for `ssh://a@b@host:29418/proj` the user is `a@b` and
    for `ssh://user@host:29418/group/proj.git` the port is `29418/group`.

    :rtype: ConnectionDescriptor
    :returns: The five URL parts, or an empty tuple if the URL does not
              match the expected shape
    """
    match = GERRIT_URL_PATTERN.search(url)
    if match is None:
        return ()
    return ConnectionDescriptor(*match.groups())


class GerritPerson(namedtuple('_GerritPerson', ('name', 'email', 'username'))):
    @classmethod
    def from_json(cls, data):
        if not data:
            return None
        return cls(data.get('name'), data.get('email'), data.get('username'))


class GerritApproval(namedtuple('_GerritApproval', (
    'type', 'value', 'description', 'granted_on', 'by',
))):
    """A single review vote on a patchset. The value is kept as text."""
    @classmethod
    def from_json(cls, data):
        return cls(
            type=data['type'],
            value=str(data['value']),
            description=data.get('description'),
            granted_on=data.get('grantedOn'),
            by=GerritPerson.from_json(data.get('by')),
        )


class GerritPatchsetInfo(namedtuple('_GerritPatchsetInfo', (
    'number', 'revision', 'ref', 'uploader', 'created_on', 'approvals',
))):
    @classmethod
    def from_json(cls, data):
        if not data:
            return None
        return cls(
            number=int(data['number']),
            revision=data.get('revision'),
            ref=data.get('ref'),
            uploader=GerritPerson.from_json(data.get('uploader')),
            created_on=data.get('createdOn'),
            approvals=[
                GerritApproval.from_json(a) for a in data.get('approvals', [])
            ],
        )


class GerritChangeInfo(namedtuple('_GerritChangeInfo', (
    'project', 'branch', 'topic', 'id', 'number', 'subject', 'owner', 'url',
    'status', 'open', 'current_patchset', 'patchsets',
))):
    """A change as returned by `gerrit query --format=JSON`"""
    @classmethod
    def from_json(cls, data):
        return cls(
            project=data['project'],
            branch=data['branch'],
            topic=data.get('topic'),
            id=data['id'],
            number=int(data['number']),
            subject=data.get('subject'),
            owner=GerritPerson.from_json(data.get('owner')),
            url=data.get('url'),
            status=data.get('status'),
            open=data.get('open', False),
            current_patchset=GerritPatchsetInfo.from_json(
                data.get('currentPatchSet')
            ),
            patchsets=[
                GerritPatchsetInfo.from_json(ps)
                for ps in data.get('patchSets', [])
            ],
        )

    def as_json(self):
        """Convert back into a JSON-compatible structure"""
        return _namedtuples_to_json(self)


def _namedtuples_to_json(obj):
    if hasattr(obj, '_asdict'):
        return {k: _namedtuples_to_json(v) for k, v in obj._asdict().items()}
    if isinstance(obj, list):
        return [_namedtuples_to_json(v) for v in obj]
    return obj


def patchset_has_approval(patchset, approval_type='Verified',
                          approval_value=''):
    """Check if a patchset carries a given approval

    :param GerritPatchsetInfo patchset: The patchset to check, may be None
    :param str approval_type:           The approval label to look for
    :param str approval_value:          The value the approval must have.
                                        '' matches any value, '+' matches
                                        any positive value and '-' matches
                                        any negative one.

    :raises ValueError: If an approval value needs to be compared to '+' or
                        '-' but is not an integer
    :rtype: bool
    """
    if not patchset or not patchset.approvals:
        return False
    for approval in patchset.approvals:
        if approval.type != approval_type:
            continue
        if approval_value == '' or approval.value == approval_value:
            return True
        if approval_value == '+' and int(approval.value) > 0:
            return True
        if approval_value == '-' and int(approval.value) < 0:
            return True
    return False


class GerritSSHError(CalledProcessError):
    pass


class GerritQueryError(Exception):
    pass


class GerritServer(namedtuple('_GerritServer', (
    'host', 'port', 'user', 'identity_file',
))):
    """A Gerrit server we talk to over SSH"""
    def __new__(cls, host, port=DEFAULT_SSH_PORT, user=None,
                identity_file=None):
        try:
            port = int(port)
        except (TypeError, ValueError):
            raise ValueError(
                "Invalid SSH port for Gerrit server '{0}': '{1}'".format(
                    host, port
                )
            )
        return super().__new__(cls, host, port, user, identity_file)

    @classmethod
    def from_jenkins_env(cls, env=environ, identity_file=None):
        return cls(
            host=env['GERRIT_HOST'],
            port=env.get('GERRIT_PORT') or DEFAULT_SSH_PORT,
            user=env.get('GERRIT_NAME') or None,
            identity_file=identity_file,
        )

    @classmethod
    def from_descriptor(cls, descriptor, identity_file=None):
        """Create a server from a parsed repository URL

        The URL parser does not split nested project paths, so a URL like
        `ssh://user@host:29418/group/proj` puts `29418/group` in the port
        and this raises ValueError.

        :param ConnectionDescriptor descriptor: The parsed URL
        :param str identity_file:               (Optional) SSH key to use

        :raises ValueError: If the descriptor port is not a number
        :rtype: GerritServer
        """
        return cls(
            host=descriptor.host,
            port=descriptor.port,
            user=descriptor.user,
            identity_file=identity_file,
        )

    @property
    def ssh_target(self):
        if self.user:
            return '{0}@{1}'.format(self.user, self.host)
        return self.host

    def run_ssh_command(self, *cli_args):
        return gerrit_cli(self, *cli_args)

    def query(self, *query_args):
        """Run `gerrit query` and return the result rows

        :param list query_args: Options and query terms to pass to Gerrit

        :rtype: list
        :returns: A list of dicts, one per matching change
        """
        output = self.run_ssh_command('query', '--format=JSON', *query_args)
        return parse_query_output(output)

    def query_change(self, change_number, include_current_patchset=False):
        """Get information about a single change

        :param int change_number:            The number of the change
        :param bool include_current_patchset: Also fetch the current (last)
                                             patchset with its approvals

        :rtype: GerritChangeInfo
        :returns: The change or None if Gerrit returned no such change
        """
        query_args = []
        if include_current_patchset:
            query_args.append('--current-patch-set')
        query_args.append('change:{0}'.format(change_number))
        rows = self.query(*query_args)
        if not rows:
            logger.info("Change '%s' not found on '%s'",
                        change_number, self.host)
            return None
        return GerritChangeInfo.from_json(rows[0])


def parse_query_output(output):
    """Parse the JSON lines Gerrit prints for a query

    :param str output: The raw query output

    :raises GerritQueryError: If the output is not valid JSON, reports an
                              error or does not end with a stats line
    :rtype: list
    :returns: The change rows, without the trailing stats line
    """
    try:
        rows = [json.loads(line) for line in output.splitlines() if line]
    except ValueError as e:
        raise GerritQueryError('Failed to parse Gerrit output: {0}'.format(e))
    errors = [row for row in rows if row.get('type') == 'error']
    if errors:
        raise GerritQueryError(
            'Gerrit query failed: {0}'.format(errors[0].get('message'))
        )
    if not rows or rows[-1].get('type') != 'stats':
        raise GerritQueryError('Gerrit query output is missing stats')
    logger.debug('Gerrit query returned %d row(s)',
                 rows[-1].get('rowCount', 0))
    return rows[:-1]


def gerrit_cli(server, *cli_args):
    """Run Gerrit CLI commands over SSH

    :param GerritServer server: The Gerrit server to talk to
    :param list cli_args:       Arguments to the Gerrit CLI

    :raises GerritSSHError: If the command fails
    :rtype: str
    :returns: The output of the invoked command
    """
    cmd_list = ['ssh', '-p', str(server.port)]
    if server.identity_file:
        cmd_list.extend(['-i', server.identity_file,
                         '-o', 'IdentitiesOnly=yes'])
    cmd_list.extend([server.ssh_target, 'gerrit'])
    cmd_list.extend(cli_args)
    logger.debug("executing: %s", ' '.join(cmd_list))
    process = Popen(cmd_list, stdout=PIPE, stderr=PIPE)
    output, error = process.communicate()
    output = output.decode('utf-8')
    error = error.decode('utf-8')
    retcode = process.poll()
    logger.debug("'ssh' exited with status: %d", retcode, extra={'blocks': (
        ('stderr', error), ('stdout', output)
    )},)
    if retcode:
        raise GerritSSHError(retcode, cmd_list, output, error)
    return output


def known_hosts_name(host, port=DEFAULT_SSH_PORT):
    """The name a host is listed under in `known_hosts`"""
    if int(port) == 22:
        return host
    return '[{0}]:{1}'.format(host, port)


def add_host_keys(keys, known_hosts_file=None):
    """Append host key lines to the user's `known_hosts` file

    Lines that are already in the file are skipped, so scanning the same
    server twice does not grow the file.

    :param list keys:            `known_hosts` lines, as printed by
                                 `ssh-keyscan`
    :param str known_hosts_file: (Optional) The file to update. Defaults to
                                 ~/.ssh/known_hosts, which is created with
                                 its directory when missing.

    :rtype: list
    :returns: The lines that were added
    """
    if known_hosts_file is None:
        ssh_dir = os.path.expanduser('~/.ssh')
        os.makedirs(ssh_dir, mode=0o700, exist_ok=True)
        known_hosts_file = os.path.join(ssh_dir, 'known_hosts')
    try:
        with open(known_hosts_file) as kh:
            content = kh.read()
    except FileNotFoundError:
        content = ''
    present = set(line.rstrip() for line in content.splitlines())
    added = []
    for key in keys:
        if key not in present:
            present.add(key)
            added.append(key)
    if not added:
        logger.debug("No new host keys for '%s'", known_hosts_file)
        return added
    with open(known_hosts_file, 'a') as kh:
        if content and not content.endswith('\n'):
            kh.write('\n')
        kh.writelines(key + '\n' for key in added)
    logger.info("Trusting %d new host key(s) in '%s'",
                len(added), known_hosts_file,
                extra={'blocks': '\n'.join(added)})
    return added


def ensure_known_hosts(host, port=DEFAULT_SSH_PORT):
    """Make sure SSH trusts the host key of the given server

    If the host is not in `known_hosts` yet, its keys are fetched with
    `ssh-keyscan` and added.

    :param str host: The server host name
    :param int port: The SSH port of the server
    """
    name = known_hosts_name(host, port)
    process = Popen(['ssh-keygen', '-F', name], stdout=PIPE, stderr=PIPE)
    process.communicate()
    if process.poll() == 0:
        logger.debug("'%s' is already a known host", name)
        return
    cmd_list = ['ssh-keyscan', '-p', str(port), host]
    logger.debug("executing: %s", ' '.join(cmd_list))
    process = Popen(cmd_list, stdout=PIPE, stderr=PIPE)
    output, error = process.communicate()
    retcode = process.poll()
    output = output.decode('utf-8')
    logger.debug("'ssh-keyscan' exited with status: %d", retcode,
                 extra={'blocks': (('stderr', error.decode('utf-8')),)})
    if retcode:
        raise CalledProcessError(retcode, cmd_list, output)
    add_host_keys([
        line.rstrip() for line in output.splitlines()
        if line and not line.startswith('#')
    ])


def get_gerrit_change(gerrit_name, gerrit_host, gerrit_change_number,
                      identity_file=None, include_current_patchset=False,
                      port=DEFAULT_SSH_PORT):
    """Get a change object from Gerrit

    :param str gerrit_name:             Gerrit user name (usually the
                                        GERRIT_NAME build variable)
    :param str gerrit_host:             Gerrit host (usually GERRIT_HOST)
    :param int gerrit_change_number:    Change number (usually
                                        GERRIT_CHANGE_NUMBER)
    :param str identity_file:           (Optional) SSH key to use
    :param bool include_current_patchset: Include the current (last)
                                        patchset and its approvals
    :param int port:                    Gerrit SSH port

    :rtype: GerritChangeInfo
    """
    ensure_known_hosts(gerrit_host, port)
    server = GerritServer(gerrit_host, port, gerrit_name, identity_file)
    return server.query_change(gerrit_change_number, include_current_patchset)
