"""conftest.py - Common pytest fixtures
"""
from collections import namedtuple
from functools import partial
from subprocess import check_output, STDOUT
from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner

from gerrit_libs import common_cli, pipeline_config


GERRIT_ENV = dict(
    GERRIT_SCHEME='ssh',
    GERRIT_NAME='jenkins',
    GERRIT_HOST='gerrit.example.com',
    GERRIT_PORT='29418',
    GERRIT_PROJECT='some/project',
    GERRIT_BRANCH='master',
    GERRIT_REFSPEC='refs/changes/45/12345/3',
    GERRIT_CHANGE_NUMBER='12345',
    GERRIT_PATCHSET_NUMBER='3',
    GERRIT_EVENT_TYPE='patchset-created',
)


@pytest.fixture
def gerrit_env(monkeypatch):
    """Make the environment look like a build started by the Gerrit trigger
    """
    for var, value in GERRIT_ENV.items():
        monkeypatch.setenv(var, value)
    return dict(GERRIT_ENV)


@pytest.fixture
def not_gerrit_env(monkeypatch):
    for var in GERRIT_ENV:
        monkeypatch.delenv(var, False)


@pytest.fixture
def git_identity(monkeypatch):
    for var, value in (
        ('GIT_AUTHOR_NAME', 'test user'),
        ('GIT_AUTHOR_EMAIL', 'test@example.com'),
        ('GIT_COMMITTER_NAME', 'test user'),
        ('GIT_COMMITTER_EMAIL', 'test@example.com'),
    ):
        monkeypatch.setenv(var, value)


@pytest.fixture
def git(git_identity):
    def _git(*args, **kwargs):
        git_command = ['git']
        git_command.extend(args)

        stderr = (STDOUT if kwargs.get('append_stderr', False) else None)
        std_out = check_output(git_command, stderr=stderr)

        return std_out.decode('utf-8')

    return _git


@pytest.fixture
def git_at(git):
    def _git_at(path):
        return partial(
            git,
            '--git-dir={0}'.format(path / '.git'),
            '--work-tree={0}'.format(str(path))
        )

    return _git_at


@pytest.fixture
def gitrepo(tmpdir, git, git_at):
    """Create git repositories with a `master` branch and given commits

    Each commit is a dict with optional `msg` and `files` keys and an
    optional `ref` key naming a ref to create pointing at the commit instead
    of advancing `master`.
    """
    def repo_maker(reponame, *commits):
        repodir = tmpdir / reponame
        repogit = git_at(repodir)
        git('-c', 'init.defaultBranch=master', 'init', str(repodir))
        repogit('symbolic-ref', 'HEAD', 'refs/heads/master')
        for i, commit in enumerate(commits):
            for fname, fcontents in commit.get('files', {}).items():
                (repodir / fname).write(fcontents, ensure=True)
                repogit('add', fname)
            msg = commit.get('msg', "Commit #{0}".format(i))
            ref = commit.get('ref')
            if ref is None:
                repogit('commit', '-m', msg, '--allow-empty')
                continue
            repogit('commit', '-m', msg, '--allow-empty')
            repogit('update-ref', ref, 'HEAD')
            repogit('reset', '--hard', 'HEAD^')
        return repodir
    return repo_maker


@pytest.fixture
def git_last_sha(git_at):
    def _git_last_sha(repo_path, ref='HEAD'):
        return git_at(repo_path)('log', '--format=format:%H', '-1', ref)
    return _git_last_sha


RepoRefs = namedtuple('RepoRefs', ('path', 'master', 'change'))


@pytest.fixture
def upstream_repo(gitrepo, git_last_sha):
    """A repo with a master branch and a Gerrit change ref on top of it"""
    repo = gitrepo(
        'upstream',
        {'msg': 'First commit', 'files': {'README': 'readme'}},
        {'msg': 'Second commit', 'files': {'file1.txt': 'F1 content'}},
        {
            'msg': 'The change',
            'files': {'file2.txt': 'F2 content'},
            'ref': 'refs/changes/45/12345/3',
        },
    )
    return RepoRefs(
        path=repo,
        master=git_last_sha(repo, 'master'),
        change=git_last_sha(repo, 'refs/changes/45/12345/3'),
    )


@pytest.fixture
def change_json():
    """A change as printed by `gerrit query --format=JSON`"""
    return {
        'project': 'some/project',
        'branch': 'master',
        'topic': 'a-topic',
        'id': 'I5b35b72af9a40b1564792dbfcf30a82cf3f5ccb5',
        'number': 12345,
        'subject': 'Just a dummy change for testing',
        'owner': {
            'name': 'Some Owner', 'email': 'owner@example.com',
            'username': 'owner',
        },
        'url': 'https://gerrit.example.com/12345',
        'status': 'NEW',
        'open': True,
        'currentPatchSet': {
            'number': 3,
            'revision': 'f00ba4',
            'ref': 'refs/changes/45/12345/3',
            'uploader': {'name': 'Some Owner', 'email': 'owner@example.com'},
            'createdOn': 1500000000,
            'approvals': [
                {
                    'type': 'Verified', 'description': 'Verified',
                    'value': '1', 'grantedOn': 1500000100,
                    'by': {'name': 'CI', 'username': 'jenkins'},
                },
                {'type': 'Code-Review', 'value': -1},
            ],
        },
    }


@pytest.fixture
def cli_runner(monkeypatch, tmpdir):
    """A runner for the CLI tools that keeps them away from user settings

    Logging setup is mocked out so tools do not add handlers to the root
    logger, and the default configuration file points to a missing file.
    """
    monkeypatch.setattr(common_cli, 'setup_logging', MagicMock())
    monkeypatch.setattr(
        pipeline_config, 'DEFAULT_CONFIG_FILE',
        str(tmpdir / 'no_such_config.yaml')
    )
    monkeypatch.delenv('GERRIT_PIPELINE_CONFIG', False)
    monkeypatch.delenv('GERRIT_SSH_KEY', False)
    return CliRunner()
