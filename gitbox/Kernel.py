#!/usr/bin/env python
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0
#
# GitBox - Encrypted file sharing on top of git hosting
# Copyright (C) 2025-2026 GitBox contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import os
import json
import logging
import platform
import secrets
import threading

# Error reporting stays disabled unless a SENTRY_DSN is configured explicitly.
import sentry_sdk

from pathlib import Path

from sentry_sdk.integrations.logging import EventHandler, LoggingIntegration
from sentry_sdk.integrations import atexit as sentryAtexit

PUBLIC_VERSION = '1.0.0'

LOG_LEVEL_MAPPING = {'DEBUG': logging.DEBUG, 'INFO': logging.INFO, 'WARNING': logging.WARNING, 'ERROR': logging.ERROR}


def configureGlobalLogLevel(logLevel):
    """
    Configure the global logging level for the application.
    This affects all loggers created via getLogger().

    Args:
        logLevel: Logging level (logging.DEBUG, logging.INFO, etc.)
    """
    rootLogger = logging.getLogger()
    rootLogger.setLevel(logLevel)

    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(name)s: %(message)s')

    if not rootLogger.handlers:
        consoleHandler = logging.StreamHandler()
        consoleHandler.setLevel(logLevel)
        consoleHandler.setFormatter(formatter)
        rootLogger.addHandler(consoleHandler)
    else:
        for handler in rootLogger.handlers:
            if isinstance(handler, logging.StreamHandler) and not isinstance(handler, EventHandler):
                handler.setLevel(logLevel)
                handler.setFormatter(formatter)


if os.getenv('GITBOX_LOGGING_LEVEL', '').upper() in LOG_LEVEL_MAPPING:
    configureGlobalLogLevel(LOG_LEVEL_MAPPING[os.environ['GITBOX_LOGGING_LEVEL'].upper()])


def getLogger(name, version=PUBLIC_VERSION):
    """
    Get a logger with Sentry integration. Sentry is initialized at most once, and only
    when SENTRY_DSN can be resolved through SecretGetter.

    Args:
        name: Logger name
        version: Version string for logging context
    """
    try:
        notInit = not sentry_sdk.get_client().is_active()

        if notInit:
            sentryDsn = SecretGetter.getInstance().get('SENTRY_DSN')

            if sentryDsn:
                # Suppress "sentry is attempting to send pending events..." on exit.
                sentryAtexit.default_callback = lambda pending, timeout: None

                sentry_sdk.init(
                    dsn=sentryDsn,
                    default_integrations=False,
                    integrations=[
                        LoggingIntegration(),
                        sentryAtexit.AtexitIntegration(),
                    ],
                    release=f'gitbox@{version}',
                )

        logger = logging.getLogger(name)

        if not any(isinstance(h, EventHandler) for h in logger.handlers):
            syslog = EventHandler()
            syslog.setFormatter(logging.Formatter('%(asctime)s version[%(version)s] : %(message)s'))
            logger.addHandler(syslog)

        return logging.LoggerAdapter(logger, {'version': version or 'unknown'})

    except Exception as e:
        fallbackLogger = logging.getLogger(name)
        fallbackLogger.warning(f"Failed to initialize Sentry: {e}")
        return fallbackLogger


def classForName(qualifiedName):
    """
    Get a class or module by its fully qualified name.
    """
    if not isinstance(qualifiedName, str):
        qualifiedName = str(qualifiedName)

    if '.' not in qualifiedName:
        return __import__(qualifiedName)

    parts = qualifiedName.split('.')
    moduleName = ".".join(parts[:-1])
    module = __import__(moduleName, fromlist=[parts[-1]])

    try:
        return getattr(module, parts[-1])
    except AttributeError:
        raise ImportError(f"Unable to import '{qualifiedName}'.")


class Singleton:
    """
    Thread-safe singleton base class. Subclasses override initialize() instead of __init__,
    it runs once for the lifetime of the instance.
    """

    _instances = {}
    _lock = threading.Lock()

    def __new__(cls, *args, **kwargs):
        if cls not in cls._instances:
            with cls._lock:
                if cls not in cls._instances:
                    cls._instances[cls] = super().__new__(cls)
        return cls._instances[cls]

    def __init__(self, *args, **kwargs):
        if not hasattr(self, '_initialized'):
            self.initialize(*args, **kwargs)
            self._initialized = True

    def initialize(self, *args, **kwargs):
        pass

    @classmethod
    def getInstance(cls):
        if cls not in cls._instances:
            cls()
        return cls._instances[cls]

    @classmethod
    def resetInstance(cls):
        """Forget the singleton instance. Test suites only."""
        with cls._lock:
            cls._instances.pop(cls, None)


class StorageLocator(Singleton):
    """
    Storage location resolution for settings, the upload task list and the payload cache.

    Environment Variables:
        GITBOX_STORAGE_LOCATION: Override storage location for testing and advanced users.
                                 If set to an existing directory it is used for both reading and writing.
    """

    def initialize(self, appName='gitbox'):
        self.appName = appName
        self._homeDir = os.path.expanduser(f'~{os.path.sep}.{appName}')
        self._platformDir = self._getPlatformDir()

        self.logger = logging.getLogger(__name__)

    def _getPlatformDir(self):
        system = platform.system()

        if system == 'Windows':
            appdata = os.getenv('APPDATA', os.path.expanduser('~'))
            return os.path.join(appdata, self.appName)
        elif system == 'Darwin':
            return os.path.expanduser(f'~/Library/Application Support/{self.appName}')
        else:
            return os.path.expanduser(f'~/.config/{self.appName}')

    def _getEnvStorageLocation(self):
        envStorageLocation = os.getenv('GITBOX_STORAGE_LOCATION')
        if envStorageLocation and os.path.isdir(envStorageLocation):
            return envStorageLocation
        return None

    def ensureStorageDir(self):
        """
        Ensure a writable storage directory exists.

        Returns:
            Path to the storage directory: env override -> home -> platform -> current
        """
        envStorageLocation = self._getEnvStorageLocation()
        if envStorageLocation:
            return envStorageLocation

        for storageDir in [self._homeDir, self._platformDir, os.path.abspath('.')]:
            testFile = os.path.join(storageDir, '.write_test')
            try:
                os.makedirs(storageDir, exist_ok=True)
                with open(testFile, 'w') as f:
                    f.write('test')

                return storageDir
            except OSError as e:
                self.logger.warning(f'Unable to use {storageDir} as storage directory => {e}.')
                continue
            finally:
                if os.path.exists(testFile):
                    os.remove(testFile)

        return os.path.abspath('.')

    def findStorage(self, filename):
        """
        Find storage location of a file, searching env override -> current -> home -> platform.

        Returns:
            Path to the file (may not exist)
        """
        envStorageLocation = self._getEnvStorageLocation()
        if envStorageLocation:
            return os.path.join(envStorageLocation, filename)

        for path in [
            os.path.abspath(filename),
            os.path.join(self._homeDir, filename),
            os.path.join(self._platformDir, filename),
        ]:
            if os.path.exists(path):
                return path

        return os.path.join(self._homeDir, filename)

    def findConfig(self, filename):
        return self.findStorage(filename)


class SecretGetter(Singleton):
    """
    Secrets with caching. Environment variables win over the .secret JSON file.
    """

    DEFAULT_SECRET_FILE = '.secret'

    def initialize(self, secretFileName=DEFAULT_SECRET_FILE):
        self.secretFileName = secretFileName
        self._cache = {}
        self._secretData = None

    def getPath(self):
        return StorageLocator.getInstance().findStorage(self.secretFileName)

    def _loadSecretFile(self):
        logger = logging.getLogger(__name__)

        if self._secretData is not None:
            return

        secretPath = self.getPath()

        if not os.path.exists(secretPath):
            self._secretData = {}
            return

        try:
            self._secretData = json.loads(Path(secretPath).read_text())
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to load secret file {secretPath}: {e}")
            self._secretData = {}

    def get(self, key: str):
        if self._cache.get(key):
            return self._cache[key]

        value = os.getenv(key)
        if value:
            self._cache[key] = value
            return value

        self._loadSecretFile()

        value = self._secretData.get(key)
        if value:
            self._cache[key] = value

        return value


class FileIdGenerator:
    """Random identifiers correlating an upload task with its cached payload"""

    ID_LEN = 40

    def generate(self):
        """
        Returns:
            str: ID_LEN lowercase hex characters, not derived from file content
        """
        return secrets.token_hex(self.ID_LEN // 2)
