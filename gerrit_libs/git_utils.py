#!/usr/bin/env python
"""git_utils.py - Wrappers and utilities for interacting with Git
"""
from functools import partial
from subprocess import Popen, STDOUT, PIPE, CalledProcessError, TimeoutExpired
import logging
import os

from gerrit_libs import file_utils


logger = logging.getLogger(__name__)

REMOTE_NAME = 'gerrit'


class GitProcessError(CalledProcessError):
    pass


def git(*args, **kwargs):
    """
    Util function to execute git commands

    :param list *args:        a list of git command line args
    :param bool append_stderr: if set to true, append STDERR to the output
    :param int timeout:       (optional) minutes to wait for git to finish
    :param dict env:          (optional) extra environment variables

    Executes git commands and return output.

    :raises GitProcessError: if git fails
    :raises TimeoutExpired:  if git did not finish within the timeout

    :rtype: str
    :returns: output of the command
    """
    git_command = ['git']
    git_command.extend(args)

    stderr = (STDOUT if kwargs.get('append_stderr', False) else PIPE)
    timeout = kwargs.get('timeout')
    env = None
    if kwargs.get('env'):
        env = dict(os.environ)
        env.update(kwargs['env'])
    logger.info("Executing command: '%s'", ' '.join(git_command))
    process = Popen(git_command, stdout=PIPE, stderr=stderr, env=env)
    try:
        output, error = process.communicate(
            timeout=timeout * 60 if timeout else None
        )
    except TimeoutExpired:
        process.kill()
        process.communicate()
        logger.error("Git timed out after %d minute(s)", timeout)
        raise
    retcode = process.poll()
    if error is None:
        error = ''
    else:
        error = error.decode('utf-8')
    output = output.decode('utf-8')
    logger.debug('Git exited with status: %d', retcode, extra={'blocks': (
        ('stderr', error), ('stdout', output)
    )},)
    if retcode:
        raise GitProcessError(retcode, git_command, output, error)
    return output


class InvalidGitRef(Exception):
    def __init__(self, message, ref):
        super(InvalidGitRef, self).__init__(message)
        self.ref = ref


def git_rev_parse(ref, git_func=git):
    """Parse a git ref and return the equivalent hash

    :param str ref: a git commit reference to parse (branch name, tag, etc.)
    :param Callable git_func: (optional) A git function to use instead of the
                              default one: git

    :rtype: str
    """
    try:
        return git_func('rev-parse', "{0}^{{commit}}".format(ref)).rstrip()
    except GitProcessError as e:
        if e.returncode == 128:
            raise InvalidGitRef(
                "Invalid Git ref given: '{0}'".format(ref), ref
            )
        else:
            raise


def set_remote(url, name=REMOTE_NAME):
    """Point the named remote of the repo in $PWD at the given URL"""
    remotes = git('remote').split()
    if name in remotes:
        git('remote', 'set-url', name, url)
    else:
        git('remote', 'add', name, url)


def checkout_gerrit_patchset(config, identity_file=None, remote_url=None):
    """Check out a Gerrit patchset with the git CLI

    This does locally what the GitSCM checkout step built from the same
    configuration does in a Jenkins pipeline.

    :param CheckoutConfig config: A validated checkout configuration
    :param str identity_file:     (optional) SSH key to fetch with
    :param str remote_url:        (optional) URL to fetch from instead of the
                                  one derived from the configuration, e.g.
                                  a local mirror

    :raises GitProcessError: if any git command fails
    :rtype: str
    :returns: The hash of the checked out HEAD commit
    """
    env = None
    if identity_file:
        env = {'GIT_SSH_COMMAND': 'ssh -i {0} -o IdentitiesOnly=yes'.format(
            identity_file
        )}
    run = partial(git, timeout=config.timeout, env=env)
    remote_branch = 'refs/remotes/{0}/{1}'.format(
        REMOTE_NAME, config.gerrit_branch
    )
    with file_utils.workdir(config.path or '.', create=True) as repo_root:
        if config.with_wipe_out:
            file_utils.wipe_dir(repo_root)
        if not os.path.isdir('.git'):
            git('init', '.')
        set_remote(remote_url or config.remote_url())
        fetch_args = ['fetch', '--tags', '--force']
        if config.depth > 0:
            fetch_args.extend(['--depth', str(config.depth)])
        fetch_args.append(REMOTE_NAME)
        run(*fetch_args, '+refs/heads/{0}:{1}'.format(
            config.gerrit_branch, remote_branch
        ))
        if config.gerrit_ref_spec:
            run(*fetch_args, config.gerrit_ref_spec)
            revision = git_rev_parse('FETCH_HEAD')
        else:
            revision = git_rev_parse(remote_branch)
        logger.info("Checking out: '%s'", revision)
        if config.with_merge:
            git('checkout', '-f', remote_branch)
            git('merge', '--ff', '--no-edit', revision)
        else:
            git('checkout', '-f', revision)
        if config.with_local_branch:
            git('checkout', '-B', config.gerrit_branch)
        git('clean', '-fdx')
        return git_rev_parse('HEAD')
