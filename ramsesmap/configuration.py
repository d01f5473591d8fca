"""Read and expose configuration information for ramsesmap

Defaults live in ``default_config.ini`` next to this file. They may be overridden by ``~/.ramsesmaprc`` or by a
``config.ini`` in the current working directory.

Global state here is only ever read by the analysis routines. Per-call behaviour (verbosity, progress reporting,
thread count) is passed explicitly as a :class:`RunOptions` instance.
"""

from __future__ import annotations

import configparser
import logging
import multiprocessing
import os


def _get_config_parser_with_defaults():
    config_parser = configparser.ConfigParser()
    config_parser.optionxform = str
    config_parser.read(
        os.path.join(os.path.dirname(__file__), "default_config.ini"))
    return config_parser


def _add_overrides_to_config_parser(config_parser):
    config_parser.read(os.path.join(os.path.dirname(__file__), "config.ini"))
    config_parser.read(os.path.expanduser("~/.ramsesmaprc"))
    config_parser.read("config.ini")


def _get_basic_config_from_parser(config_parser):
    config = {'verbose': config_parser.getboolean('general', 'verbose'),
              'show-progress': config_parser.getboolean('general', 'show-progress')}

    config['number_of_threads'] = int(
        config_parser.get('general', 'number_of_threads'))

    if config['number_of_threads'] < 0:
        config['number_of_threads'] = multiprocessing.cpu_count()

    config['projection'] = {
        'chunk-size': config_parser.getint('projection', 'chunk-size'),
        'default-mode': config_parser.get('projection', 'default-mode'),
        'default-weighting': config_parser.get('projection', 'default-weighting'),
    }

    config['units'] = {}
    for k in config_parser.options('units'):
        config['units'][k] = config_parser.get('units', k)

    return config


def _setup_logger(config):
    logger = logging.getLogger('ramsesmap')
    logger.setLevel(logging.DEBUG)
    formatter = logging.Formatter('%(name)s : %(message)s')
    for existing_handler in list(logger.handlers):
        logger.removeHandler(existing_handler)

    ch = logging.StreamHandler()
    ch.setFormatter(formatter)
    logger.addHandler(ch)

    if config['verbose']:
        set_logging_level(logging.INFO)
        logger.info("Verbose mode is on")
    else:
        set_logging_level(logging.WARNING)
    return logger


def set_logging_level(level=logging.INFO):
    """Set the logging level for ramsesmap, in terms of the standard Python logging module levels.

    Set to logging.INFO for more verbose output, or logging.WARNING for less."""
    logger = logging.getLogger('ramsesmap')
    logger.setLevel(level)


class RunOptions:
    """Per-call options for the analysis entry points.

    Parameters
    ----------
    verbose : bool, optional
        If True, summary messages are emitted at INFO level rather than DEBUG. Defaults to the ``verbose`` setting
        of the configuration file.
    show_progress : bool, optional
        If True, projections log one message per rasterised level. Defaults to the ``show-progress`` setting.
    max_threads : int, optional
        Upper bound on the number of worker threads. Defaults to ``number_of_threads``.
    """

    __slots__ = ('verbose', 'show_progress', 'max_threads')

    def __init__(self, verbose: bool | None = None, show_progress: bool | None = None,
                 max_threads: int | None = None):
        self.verbose = config['verbose'] if verbose is None else bool(verbose)
        self.show_progress = config['show-progress'] if show_progress is None else bool(show_progress)
        self.max_threads = config['number_of_threads'] if max_threads is None else int(max_threads)

    @property
    def log_level(self):
        """The level at which entry points report what they are doing"""
        return logging.INFO if self.verbose else logging.DEBUG

    def __repr__(self):
        return "<RunOptions verbose=%r show_progress=%r max_threads=%r>" % (self.verbose, self.show_progress,
                                                                            self.max_threads)

    @classmethod
    def resolve(cls, options: RunOptions | None) -> RunOptions:
        """Return options itself, or a default-constructed instance if options is None"""
        if options is None:
            return cls()
        if not isinstance(options, cls):
            raise TypeError("options must be a RunOptions instance")
        return options


config_parser = _get_config_parser_with_defaults()
_add_overrides_to_config_parser(config_parser)
config = _get_basic_config_from_parser(config_parser)
logger = _setup_logger(config)
