"""pipeline_logging.py - Logging setup for the Gerrit pipeline tools

Log records may carry text blocks (e.g. the STDOUT and STDERR of a git or ssh
process) in a `blocks` attribute, passed via `extra={'blocks': ...}`. The
formatters here render those blocks as indented text under the log line.
"""
import logging
import logging.handlers
import sys
from collections.abc import Iterable, Mapping
from copy import copy
from itertools import chain
from traceback import format_exception

FULL_LOG_FORMAT = '%(asctime)s:%(levelname)s:%(name)s:%(message)s'


def setup_logging(debug=False, verbose=False, log=None, logger=None):
    """Configure logging for when running as a console app

    :param bool debug:            Emit debug messages
    :param bool verbose:          Emit info messages
    :param str log:               If set, also write a full log (including
                                  debug messages and exception tracebacks)
                                  to the given file. sys.stderr may be given
                                  to get the full format on STDERR instead.
    :param logging.Logger logger: (Optional) The logger to configure.
                                  Defaults to the root logger.
    """
    if logger is None:
        logger = logging.getLogger()
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARN
    logger.setLevel(level)
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(ExceptionHider('%(message)s'))
    logger.addHandler(stderr_handler)
    if log is None:
        return
    if log == sys.stderr:
        stderr_handler.setFormatter(ExceptionSpreader(FULL_LOG_FORMAT))
        return
    file_handler = logging.handlers.WatchedFileHandler(log)
    file_handler.setFormatter(ExceptionSpreader(FULL_LOG_FORMAT))
    file_handler.setLevel(1)
    stderr_handler.setLevel(level)
    logger.setLevel(1)
    logger.addHandler(file_handler)


class BlockFormatter(logging.Formatter):
    """Formatter that renders text blocks attached to log records"""

    def format(self, record):
        blocks = getattr(record, 'blocks', None)
        if blocks is None:
            return super().format(record)
        out_rec = copy(record)
        exc_info = out_rec.exc_info
        out_rec.exc_info = None
        out = [super().format(out_rec)]
        for block in self._iter_blocks(blocks):
            if isinstance(block, str):
                title, text = None, block
            elif isinstance(block, Iterable) and len(block) == 2:
                title, text = block
            else:
                title, text = None, str(block)
            if title is not None:
                out.append(self._log_line(out_rec, '  ---- %s ----', title))
            for line in text.splitlines():
                out.append(self._log_line(out_rec, '    %s', line))
        if exc_info:
            out.append(self.formatException(exc_info))
        return '\n'.join(out)

    @staticmethod
    def _iter_blocks(blocks):
        """Iterate over the blocks of a record

        :param object blocks: A string, a mapping of titles to texts, an
                              iterable of strings or (title, text) pairs or
                              any other object convertible to a string

        :rtype: Iterator
        """
        if isinstance(blocks, str):
            return iter((blocks,))
        if isinstance(blocks, Mapping):
            return iter(blocks.items())
        if isinstance(blocks, Iterable):
            return iter(blocks)
        return iter((str(blocks),))

    def _log_line(self, mut_rec, msg, line):
        mut_rec.msg = msg
        mut_rec.args = (line,)
        return super().format(mut_rec)


class ExceptionSpreader(BlockFormatter):
    """Formatter that turns an attached exception into a text block"""

    def format(self, record):
        if record.exc_info is None:
            return super().format(record)
        out_rec = copy(record)
        out_rec.exc_info = None
        exc_text = ''.join(format_exception(*record.exc_info))
        if getattr(out_rec, 'blocks', None) is None:
            out_rec.blocks = (('exception', exc_text),)
        else:
            out_rec.blocks = chain(
                self._iter_blocks(out_rec.blocks), (('exception', exc_text),)
            )
        return super().format(out_rec)


class ExceptionHider(BlockFormatter):
    """Formatter that keeps tracebacks out of the console output"""

    def format(self, record):
        if record.exc_info is None:
            return super().format(record)
        out_rec = copy(record)
        out_rec.exc_info = None
        out_rec.exc_text = None
        return super().format(out_rec)
