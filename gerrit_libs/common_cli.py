"""Helpers for creating the Gerrit pipeline CLI applications"""

from functools import wraps
from logging import Logger
from typing import Any, Callable

from click import Path, option

from gerrit_libs.pipeline_logging import setup_logging


def compose_decorators(*decorators) -> Callable:
    """Factory function for composing decorators

    :param decorators: The decorators to compose, listed in the order they
        would be written above a function definition
    """
    def decorate(func: Callable) -> Callable:
        for decorator in reversed(decorators):
            func = decorator(func)
        return func
    return decorate


"""Log flag"""
log_opt = option(
    '--log', '-l', type=str, metavar='PATH',
    help=('If set, will log to the specified file.'
          ' Otherwise, log to stderr.')
)


"""Debug flag"""
debug_opt = option(
    '--debug', '-d', help='Provide debugging output.',
    type=bool, is_flag=True, envvar='DEBUG'
)


"""Verbose flag"""
verbose_opt = option(
    '--verbose', '-v',
    help='Provide verbose output.', is_flag=True
)


"""Common CLI flags"""
cli_with_logging = compose_decorators(verbose_opt, debug_opt, log_opt)


"""Pipeline configuration file"""
config_opt = option(
    '--config', '-c', 'config_file', metavar='PATH',
    type=Path(exists=True, dir_okay=False), envvar='GERRIT_PIPELINE_CONFIG',
    help=(
        'YAML configuration file. Defaults to'
        ' $XDG_CONFIG_HOME/gerrit_pipeline.yaml if it exists.'
    )
)


"""SSH identity used for talking to Gerrit"""
identity_file_opt = option(
    '--identity-file', '-i', metavar='PATH',
    type=Path(exists=True, dir_okay=False), envvar='GERRIT_SSH_KEY',
    help='SSH private key to authenticate to Gerrit with.'
)


"""Output file"""
output_opt = option(
    '--output', '-o', metavar='PATH', type=Path(dir_okay=False),
    help='Write the result to the given file instead of STDOUT.'
)


def cli_with_logging_from_logger(logger: Logger) -> Callable:
    """Create a decorator which configures the logger from CLI flags

    :param logger: The logger that that needs to be configured
    """
    def cli_with_logging_wrapper(func: Callable) -> Callable:
        @cli_with_logging
        @wraps(func)
        def run_cmd_with_logging(
            verbose: bool,
            debug: bool,
            log: str,
            **kwargs
        ) -> Any:
            setup_logging(
                debug=debug,
                verbose=verbose,
                log=log,
                logger=logger
            )
            return func(**kwargs)
        return run_cmd_with_logging
    return cli_with_logging_wrapper
