import os

import pytest

from gerrit_libs import file_utils


def test_workdir(monkeypatch, tmpdir):
    newdir = tmpdir / 'newdir'
    newdir.mkdir()
    monkeypatch.chdir(tmpdir)
    with file_utils.workdir(str(newdir)) as cwd:
        assert cwd == str(newdir), 'expected cwd to be newdir'
        assert os.getcwd() == cwd, 'expected to be in newdir'
    assert os.getcwd() == str(tmpdir), 'expected to be in tmpdir'


def test_workdir_exception(monkeypatch, tmpdir):
    newdir = tmpdir / 'newdir'
    monkeypatch.chdir(tmpdir)
    with pytest.raises(OSError) as excinfo:
        with file_utils.workdir(str(newdir)):
            pass  # should failed here
    assert excinfo.value.errno == 2, 'expected errno to be 2 (no such file)'


def test_workdir_create(monkeypatch, tmpdir):
    monkeypatch.chdir(tmpdir)
    with file_utils.workdir('some/nested/dir', create=True) as cwd:
        assert cwd == str(tmpdir / 'some' / 'nested' / 'dir')
    assert os.getcwd() == str(tmpdir), 'expected to be in tmpdir'
    with file_utils.workdir('some/nested/dir', create=True) as cwd:
        assert cwd == str(tmpdir / 'some' / 'nested' / 'dir')


def test_workdir_restores_on_error(monkeypatch, tmpdir):
    monkeypatch.chdir(tmpdir)
    with pytest.raises(RuntimeError):
        with file_utils.workdir('newdir', create=True):
            raise RuntimeError()
    assert os.getcwd() == str(tmpdir), 'expected to be in tmpdir'


def test_wipe_dir(tmpdir):
    (tmpdir / 'file.txt').write('content')
    (tmpdir / 'sub' / 'nested.txt').write('content', ensure=True)
    (tmpdir / '.hidden').write('content')
    (tmpdir / 'link').mksymlinkto(tmpdir / 'sub')
    file_utils.wipe_dir(str(tmpdir))
    assert os.listdir(str(tmpdir)) == []
