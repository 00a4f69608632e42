#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
A common interface to all configuration settings available via environment variables. This module
is also host to the logging configuration.
"""
from __future__ import annotations

import os
import logging

from enum import IntEnum
from typing import Optional, TypeVar, Generic

_T = TypeVar('_T')

Logger = logging.Logger


class LogLevel(IntEnum):
    """
    Log levels of the package. `DETACHED` silences all output, so that failures are only reported
    by the exceptions that are raised from the extraction.
    """
    DETACHED = logging.CRITICAL + 100
    NONE = logging.CRITICAL + 50

    @classmethod
    def FromVerbosity(cls, verbosity: int):
        if verbosity < 0:
            return cls.DETACHED
        return {
            0: cls.WARNING,
            1: cls.INFO,
            2: cls.DEBUG
        }.get(verbosity, cls.DEBUG)

    NOTSET   = logging.NOTSET    # noqa
    CRITICAL = logging.CRITICAL  # noqa
    FATAL    = logging.FATAL     # noqa
    ERROR    = logging.ERROR     # noqa
    WARNING  = logging.WARNING   # noqa
    WARN     = logging.WARN      # noqa
    INFO     = logging.INFO      # noqa
    DEBUG    = logging.DEBUG     # noqa

    @property
    def verbosity(self) -> int:
        if self.value >= LogLevel.DETACHED:
            return -1
        if self.value >= LogLevel.WARNING:
            return +0
        if self.value >= LogLevel.INFO:
            return +1
        if self.value >= LogLevel.DEBUG:
            return +2
        else:
            return -1


class VerifierFormatter(logging.Formatter):

    NAMES = {
        logging.CRITICAL : 'failure',
        logging.ERROR    : 'failure',
        logging.WARNING  : 'warning',
        logging.INFO     : 'comment',
        logging.DEBUG    : 'verbose',
    }

    def formatMessage(self, record: logging.LogRecord) -> str:
        record.custom_level_name = self.NAMES.get(record.levelno, record.levelname.lower())
        return super().formatMessage(record)


def logger(name: str) -> logging.Logger:
    """
    Obtain a logger below the `carverify` logger, which is configured with the default format the
    first time this function is called. When the environment specifies a verbosity, it is applied
    to the `carverify` logger and inherited by all others.
    """
    root = logging.getLogger('carverify')
    if not root.handlers:
        stream = logging.StreamHandler()
        stream.setFormatter(VerifierFormatter(
            '({asctime}) {custom_level_name} in {name}: {message}',
            style='{',
            datefmt='%H:%M:%S',
        ))
        root.addHandler(stream)
        root.propagate = False
        if (level := environment.verbosity.value) is not None:
            root.setLevel(level)
    return logging.getLogger(name)


class EnvironmentVariableSetting(Generic[_T]):
    key: str
    value: Optional[_T]

    def __init__(self, name: str):
        self.key = F'CARVERIFY_{name}'
        self.value = self.read()

    def read(self) -> Optional[_T]:
        return None


class EVInt(EnvironmentVariableSetting[int]):
    def read(self):
        try:
            return int(os.environ[self.key], 0)
        except (KeyError, ValueError):
            return 0


class EVLog(EnvironmentVariableSetting[Optional[LogLevel]]):
    def read(self):
        try:
            loglevel = os.environ[self.key]
        except KeyError:
            return None
        if loglevel.isdigit():
            return LogLevel.FromVerbosity(int(loglevel))
        try:
            loglevel = LogLevel[loglevel.upper()]
        except KeyError:
            levels = ', '.join(ll.name for ll in LogLevel)
            logging.getLogger(__name__).warning(
                F'ignoring unknown verbosity "{loglevel!r}"; pick from: {levels}')
            return None
        else:
            return loglevel


class environment:
    verbosity = EVLog('VERBOSITY')
    max_frame_size = EVInt('MAX_FRAME_SIZE')


class Loggable:
    """
    A mixin that provides leveled logging methods. Messages can be given as callables, which are
    only evaluated if the corresponding level is enabled.
    """
    _logger: Logger

    @classmethod
    def _get_logger(cls) -> Logger:
        try:
            return cls.__dict__['_logger']
        except KeyError:
            pass
        cls._logger = _logger = logger(F'{cls.__module__}.{cls.__name__}')
        return _logger

    @classmethod
    def _output(cls, *messages) -> str:
        def transform(message):
            if callable(message):
                message = message()
            return str(message)
        return ' '.join(transform(msg) for msg in messages)

    @classmethod
    def _log(cls, level: LogLevel, *messages) -> bool:
        log = cls._get_logger()
        rv = log.isEnabledFor(level)
        if rv and messages:
            log.log(level, cls._output(*messages))
        return rv

    @classmethod
    def log_warn(cls, *messages) -> bool:
        """
        Log the message if and only if the current log level is at least `LogLevel.WARNING`.
        """
        return cls._log(LogLevel.WARNING, *messages)

    @classmethod
    def log_info(cls, *messages) -> bool:
        """
        Log the message if and only if the current log level is at least `LogLevel.INFO`.
        """
        return cls._log(LogLevel.INFO, *messages)

    @classmethod
    def log_debug(cls, *messages) -> bool:
        """
        Log the message if and only if the current log level is at least `LogLevel.DEBUG`.
        """
        return cls._log(LogLevel.DEBUG, *messages)
