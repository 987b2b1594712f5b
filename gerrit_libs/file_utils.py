"""file_utils.py: a library to work with files and directories
"""

from contextlib import contextmanager
import logging
import os
import shutil


logger = logging.getLogger(__name__)


@contextmanager
def workdir(path: str, create: bool = False):
    """A context manager to change the working directory

    :param path:   The directory to change into
    :param create: Create the directory (and its parents) if it is missing,
                   like the `dir` pipeline step does
    """
    if create and not os.path.isdir(path):
        logger.debug("Creating directory: '%s'", path)
        os.makedirs(path)
    previous_workdir = os.getcwd()
    os.chdir(path)
    try:
        yield os.getcwd()
    finally:
        os.chdir(previous_workdir)


def wipe_dir(path: str):
    """Remove everything inside a directory, leaving it empty"""
    logger.info("Wiping out: '%s'", path)
    for entry in os.listdir(path):
        entry_path = os.path.join(path, entry)
        if os.path.isdir(entry_path) and not os.path.islink(entry_path):
            shutil.rmtree(entry_path)
        else:
            os.unlink(entry_path)
