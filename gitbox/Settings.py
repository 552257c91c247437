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

import json
import os

from dataclasses import dataclass, field, asdict

from gitbox.Kernel import Singleton, StorageLocator, getLogger
from gitbox.crypto import DEFAULT_BACKEND

# Where share links point to. The download route lives in the URL fragment so the
# key and nonce are never sent to this host.
APP_URL = os.getenv('GITBOX_APP_URL', 'https://alexrintt.io/gitbox')

DEV_MODE = os.getenv('GITBOX_DEV', 'False') == 'True'

# Hostname a share link must carry before anything parsed from it is trusted.
SELF_HOSTNAME = os.getenv('GITBOX_SELF_HOSTNAME', 'localhost' if DEV_MODE else 'alexrintt.io')

# The only hosts raw objects are ever fetched from.
ALLOWED_RAW_HOSTNAMES = tuple(
    host.strip() for host in os.getenv('GITBOX_ALLOWED_HOSTS', 'raw.githubusercontent.com').split(',') if host.strip()
)

RAW_CONTENT_BASE_URL = 'https://raw.githubusercontent.com'
GITHUB_API_URL = os.getenv('GITBOX_GITHUB_API_URL', 'https://api.github.com')

REMOTE_DIRECTORY = '.gitbox'
UPLOAD_COMMIT_MESSAGE = 'Upload sent'

MAX_UPLOAD_RETRIES = 5

CRYPTO_BACKEND = os.getenv('GITBOX_CRYPTO_BACKEND', DEFAULT_BACKEND)

SETTINGS_FILENAME = 'settings.json'
UPLOAD_TASKS_FILENAME = 'uploadTasks.json'
CACHE_DIRNAME = 'cache'

SUPPORT_URL = 'https://github.com/alexrintt/gitbox/issues'

logger = getLogger(__name__)


@dataclass
class GitRepository:
    owner: str = ''
    name: str = ''
    branch: str = ''

    @property
    def fullName(self):
        return f'{self.owner}/{self.name}'


@dataclass
class RepositorySettings:
    """Target repository and credential, valid only after a successful access check"""
    repository: GitRepository = field(default_factory=GitRepository)
    accessToken: str = ''
    valid: bool = False

    def toDict(self):
        return asdict(self)

    @staticmethod
    def fromDict(data):
        repository = data.get('repository') or {}
        return RepositorySettings(
            repository=GitRepository(
                owner=str(repository.get('owner', '')),
                name=str(repository.get('name', '')),
                branch=str(repository.get('branch', '')),
            ),
            accessToken=str(data.get('accessToken', '')),
            valid=data.get('valid') is True,
        )


# Singleton
class SettingsGetter(Singleton):

    def initialize(self, cryptoBackend=None, appUrl=None, selfHostname=None, allowedHostnames=None):
        self._cryptoBackend = cryptoBackend or CRYPTO_BACKEND
        self._appUrl = appUrl or APP_URL
        self._selfHostname = selfHostname or SELF_HOSTNAME
        self._allowedHostnames = tuple(allowedHostnames or ALLOWED_RAW_HOSTNAMES)

        self._storageLocator = StorageLocator.getInstance()

    @property
    def cryptoBackend(self):
        return self._cryptoBackend

    @property
    def appUrl(self):
        return self._appUrl

    @property
    def selfHostname(self):
        return self._selfHostname

    @property
    def allowedHostnames(self):
        return self._allowedHostnames

    def getSupportURL(self):
        return SUPPORT_URL

    def getStoragePath(self, filename):
        return self._storageLocator.findStorage(filename)

    def getCacheDir(self):
        return os.path.join(self._storageLocator.ensureStorageDir(), CACHE_DIRNAME)

    def loadRepositorySettings(self) -> RepositorySettings:
        """Load verified settings, an unreadable file counts as no settings at all"""
        settingsPath = self.getStoragePath(SETTINGS_FILENAME)
        if not os.path.exists(settingsPath):
            return RepositorySettings()

        try:
            with open(settingsPath, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f'Failed to load repository settings from {settingsPath}: {e}')
            return RepositorySettings()

        if not isinstance(data, dict):
            return RepositorySettings()

        return RepositorySettings.fromDict(data)

    def saveRepositorySettings(self, settings: RepositorySettings):
        settingsPath = self.getStoragePath(SETTINGS_FILENAME)
        os.makedirs(os.path.dirname(settingsPath) or '.', exist_ok=True)

        # The file holds an access token.
        fd = os.open(settingsPath, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(settings.toDict(), f, indent=2)

        logger.info(f'Saved repository settings for {settings.repository.fullName} to {settingsPath}')

    def clearRepositorySettings(self):
        settingsPath = self.getStoragePath(SETTINGS_FILENAME)
        if os.path.exists(settingsPath):
            os.remove(settingsPath)
            logger.info(f'Removed repository settings {settingsPath}')

    def verifyRepositorySettings(self, owner, name, accessToken, accessChecker) -> RepositorySettings:
        """
        Run the write access check and persist the settings only if it succeeds.

        The branch is always replaced by the repository default branch reported by the host.
        Access check errors propagate unchanged and leave the saved settings untouched.
        """
        defaultBranch = accessChecker.checkWriteAccess(owner, name, accessToken)

        settings = RepositorySettings(
            repository=GitRepository(owner=owner, name=name, branch=defaultBranch),
            accessToken=accessToken,
            valid=True,
        )
        self.saveRepositorySettings(settings)
        return settings
