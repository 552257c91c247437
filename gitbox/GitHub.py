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
"""
GitHub collaborators of the transport protocol: the repository access check and the remote
object store (contents API for writes, raw.githubusercontent.com for reads).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote

import requests

from gitbox.Errors import InvalidToken, PrivateOrNonExistentRepository, UserHasNoWritePermission
from gitbox.Kernel import PUBLIC_VERSION, getLogger
from gitbox.Settings import GITHUB_API_URL, RAW_CONTENT_BASE_URL, GitRepository

logger = getLogger(__name__)

GITHUB_ACCEPT = 'application/vnd.github+json'


@dataclass
class StoreResponse:
    status: int
    content: bytes = b''
    data: Any = None

    @property
    def ok(self):
        return 200 <= self.status < 300


class AccessChecker(ABC):

    @abstractmethod
    def checkWriteAccess(self, owner: str, name: str, accessToken: str) -> str:
        """
        Verify the credential can push to the repository.

        Returns:
            The repository default branch

        Raises:
            InvalidToken, PrivateOrNonExistentRepository, UserHasNoWritePermission
        """
        pass


class RemoteStore(ABC):

    @abstractmethod
    def putObject(self, repository: GitRepository, path, base64Content, message, branch, accessToken) -> StoreResponse:
        pass

    @abstractmethod
    def getObjectRaw(self, url) -> StoreResponse:
        pass

    @abstractmethod
    def getTree(self, repository: GitRepository, rev, accessToken=None) -> StoreResponse:
        pass

    @abstractmethod
    def deleteObject(self, repository: GitRepository, path, sha, message, branch, accessToken) -> StoreResponse:
        pass

    def getRawObjectUrl(self, repository: GitRepository, path) -> str:
        return f'{RAW_CONTENT_BASE_URL}/{repository.owner}/{repository.name}/{repository.branch}/{path}'


class GitHubClient:
    """Shared requests session for the GitHub REST API"""

    def __init__(self, apiUrl=GITHUB_API_URL, session: Optional[requests.Session] = None, timeout=None):
        self.apiUrl = apiUrl.rstrip('/')
        self.session = session or requests.Session()
        self.session.headers['User-Agent'] = f'gitbox/{PUBLIC_VERSION}'
        self.timeout = timeout

    def _headers(self, accessToken=None):
        headers = {'Accept': GITHUB_ACCEPT}
        if accessToken:
            headers['Authorization'] = f'Bearer {accessToken}'
        return headers

    def _repoUrl(self, repository: GitRepository):
        return f'{self.apiUrl}/repos/{quote(repository.owner, safe="")}/{quote(repository.name, safe="")}'

    def request(self, method, url, accessToken=None, **kwargs):
        response = self.session.request(
            method, url, headers=self._headers(accessToken), timeout=self.timeout, **kwargs
        )
        logger.debug(f'{method} {url} => {response.status_code}')
        return response

    def close(self):
        self.session.close()


class GitHubAccessChecker(GitHubClient, AccessChecker):

    def getUser(self, accessToken):
        if not accessToken:
            return None

        try:
            response = self.request('GET', f'{self.apiUrl}/user', accessToken)
        except requests.RequestException as e:
            logger.warning(f'Failed to fetch the user of the access token: {e}')
            return None

        if response.status_code != 200:
            return None
        return response.json()

    def getPublicRepository(self, owner, name, accessToken):
        if not owner or not name:
            return None

        try:
            response = self.request('GET', self._repoUrl(GitRepository(owner, name)), accessToken)
        except requests.RequestException as e:
            logger.warning(f'Failed to fetch repository {owner}/{name}: {e}')
            return None

        if response.status_code != 200:
            return None

        repository = response.json()
        if repository.get('private'):
            return None
        return repository

    def isCollaborator(self, owner, name, login, accessToken):
        url = f'{self._repoUrl(GitRepository(owner, name))}/collaborators/{quote(login, safe="")}'
        try:
            response = self.request('GET', url, accessToken)
        except requests.RequestException as e:
            logger.warning(f'Failed to check collaborator {login} on {owner}/{name}: {e}')
            return False

        return response.status_code == 204

    def checkWriteAccess(self, owner, name, accessToken):
        user = self.getUser(accessToken)
        if user is None:
            raise InvalidToken()

        repository = self.getPublicRepository(owner, name, accessToken)
        if repository is None:
            raise PrivateOrNonExistentRepository()

        if not self.isCollaborator(owner, name, user.get('login', ''), accessToken):
            raise UserHasNoWritePermission()

        logger.debug(f"{user.get('login')} can write to {owner}/{name}")
        return repository.get('default_branch', '')


class GitHubStore(GitHubClient, RemoteStore):

    def _contentsUrl(self, repository, path):
        return f'{self._repoUrl(repository)}/contents/{quote(path)}'

    def putObject(self, repository, path, base64Content, message, branch, accessToken):
        body = {'message': message, 'content': base64Content}
        if branch:
            body['branch'] = branch

        response = self.request('PUT', self._contentsUrl(repository, path), accessToken, json=body)
        return StoreResponse(status=response.status_code)

    def getObjectRaw(self, url):
        # No credential, the raw host only ever sees public reads.
        response = self.session.get(url, timeout=self.timeout)
        logger.debug(f'GET {url} => {response.status_code}')
        return StoreResponse(status=response.status_code, content=response.content)

    def getTree(self, repository, rev, accessToken=None):
        response = self.request('GET', f'{self._repoUrl(repository)}/git/trees/{quote(rev, safe="/:")}', accessToken)
        if response.status_code != 200:
            return StoreResponse(status=response.status_code)
        return StoreResponse(status=response.status_code, data=response.json())

    def deleteObject(self, repository, path, sha, message, branch, accessToken):
        body = {'message': message, 'sha': sha}
        if branch:
            body['branch'] = branch

        response = self.request('DELETE', self._contentsUrl(repository, path), accessToken, json=body)
        return StoreResponse(status=response.status_code)
