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
Transport protocol: turns a local file into a share link and a share link back into the file.

Upload:
    secret -> encrypt name and content -> envelope -> .gitbox/<hex(hash(envelope))> -> share link
Download:
    validate link -> fetch raw envelope -> compare key/nonce hashes -> decrypt
Delete:
    validate link -> look up blob sha in the parent tree -> delete commit

No retries happen here, callers decide what to retry.
"""

import base64
import hmac
import os

from dataclasses import dataclass

from gitbox import Envelope
from gitbox.Errors import (
    AuthenticationFailure, DeleteFailed, InvalidDownloadUrl, InvalidFilePath, KeyMismatch, UploadFailed
)
from gitbox.GitHub import AccessChecker, RemoteStore
from gitbox.Kernel import getLogger
from gitbox.Settings import REMOTE_DIRECTORY, UPLOAD_COMMIT_MESSAGE, GitRepository
from gitbox.Validation import (
    KEY_PARAM, LOCATION_PARAM, NONCE_PARAM, buildShareLink, decodeBase64Payload, extractRepositoryFromRawUrl,
    parseShareLink, sanitizeFilename, sanitizeGitRepository, validateKeyAndNonceBase64, validateRawObjectUrl,
    validateSelfUrl
)
from gitbox.crypto import CryptoBackend, Secret

logger = getLogger(__name__)


@dataclass
class SharedFile:
    name: str
    content: bytes

    @property
    def size(self):
        return len(self.content)


@dataclass
class ShareLinkPayload:
    """Validated, decoded parameters of a share link"""
    location: str
    secret: Secret


def saveSharedFile(sharedFile: SharedFile, directory) -> str:
    """
    Write a downloaded file into directory without overwriting anything.

    The name comes from the sender, so it is sanitized again before touching the filesystem.

    Returns:
        Path of the written file
    """
    os.makedirs(directory, exist_ok=True)

    base, ext = os.path.splitext(sanitizeFilename(sharedFile.name))
    candidate = os.path.join(directory, base + ext)
    counter = 1
    while True:
        try:
            with open(candidate, 'xb') as f:
                f.write(sharedFile.content)
            return candidate
        except FileExistsError:
            candidate = os.path.join(directory, f'{base} ({counter}){ext}')
            counter += 1


class TransportProtocol:

    def __init__(
        self,
        crypto: CryptoBackend,
        store: RemoteStore,
        accessChecker: AccessChecker,
        appUrl: str,
        selfHostname: str,
        allowedHostnames,
    ):
        self.crypto = crypto
        self.store = store
        self.accessChecker = accessChecker
        self.appUrl = appUrl
        self.selfHostname = selfHostname
        self.allowedHostnames = tuple(allowedHostnames)

    def getRemotePath(self, envelope: bytes) -> str:
        return f'{REMOTE_DIRECTORY}/{self.crypto.hash(envelope).hex()}'

    def buildEnvelope(self, filename: str, content: bytes, secret: Secret) -> bytes:
        keyHash = self.crypto.hash(secret.key)
        nonceHash = self.crypto.hash(secret.nonce)

        encFileContent = self.crypto.encrypt(content, secret)
        encFilename = self.crypto.encrypt(filename.encode('utf-8'), secret)

        return Envelope.encode(keyHash, nonceHash, encFilename, encFileContent)

    def openEnvelope(self, data: bytes, secret: Secret) -> SharedFile:
        """
        Decode an envelope and decrypt it with secret.

        Raises:
            TruncatedEnvelope, KeyMismatch (decrypt never attempted), AuthenticationFailure
        """
        envelope = Envelope.decode(data)

        keyMatches = hmac.compare_digest(self.crypto.hash(secret.key), envelope.keyHash)
        nonceMatches = hmac.compare_digest(self.crypto.hash(secret.nonce), envelope.nonceHash)
        if not (keyMatches and nonceMatches):
            raise KeyMismatch()

        filenameBytes = self.crypto.decrypt(envelope.encFilename, secret)
        content = self.crypto.decrypt(envelope.encFileContent, secret)

        try:
            filename = filenameBytes.decode('utf-8')
        except UnicodeDecodeError:
            raise AuthenticationFailure('The decrypted file name is not valid UTF-8') from None

        return SharedFile(name=filename, content=content)

    def generateShareLink(self, filename: str, content: bytes, repository: GitRepository, accessToken: str) -> str:
        """
        Encrypt a file, commit it to the repository and return its share link.

        Raises:
            InvalidToken, PrivateOrNonExistentRepository, UserHasNoWritePermission: from the access check
            UploadFailed: the store answered with a non-2xx status
        """
        safeRepository = sanitizeGitRepository(repository)
        safeFilename = sanitizeFilename(filename)

        secret = self.crypto.createSecret()
        envelope = self.buildEnvelope(safeFilename, content, secret)
        remotePath = self.getRemotePath(envelope)

        defaultBranch = self.accessChecker.checkWriteAccess(safeRepository.owner, safeRepository.name, accessToken)
        if not safeRepository.branch:
            safeRepository = sanitizeGitRepository(
                GitRepository(owner=safeRepository.owner, name=safeRepository.name, branch=defaultBranch)
            )

        response = self.store.putObject(
            safeRepository,
            remotePath,
            base64.b64encode(envelope).decode('ascii'),
            UPLOAD_COMMIT_MESSAGE,
            safeRepository.branch,
            accessToken,
        )
        if not response.ok:
            raise UploadFailed(
                f'File upload failed with status code {response.status}, it may happen due to invalid token, '
                f'exotic branch name or repository not available (private or deleted)',
                statusCode=response.status,
            )

        logger.info(f'Uploaded {len(envelope)} bytes to {safeRepository.fullName}:{remotePath}')

        rawUrl = self.store.getRawObjectUrl(safeRepository, remotePath)
        return buildShareLink(
            self.appUrl,
            rawUrl,
            base64.b64encode(secret.key).decode('ascii'),
            base64.b64encode(secret.nonce).decode('ascii'),
        )

    def validateShareLink(self, link: str) -> ShareLinkPayload:
        """
        Run every link check, in order: application origin, share link origin, raw object
        location, key and nonce payload.
        """
        validateSelfUrl(self.appUrl, self.selfHostname)
        validateSelfUrl(link, self.selfHostname)

        params = parseShareLink(link)
        location = params[LOCATION_PARAM]
        validateRawObjectUrl(location, self.allowedHostnames)

        keyBase64, nonceBase64 = params[KEY_PARAM], params[NONCE_PARAM]
        validateKeyAndNonceBase64(keyBase64, nonceBase64)

        secret = Secret(key=decodeBase64Payload(keyBase64), nonce=decodeBase64Payload(nonceBase64))
        return ShareLinkPayload(location=location, secret=secret)

    def resolveShareLink(self, link: str) -> SharedFile:
        """
        Download and decrypt the file behind a share link.

        Raises:
            any link validation error, InvalidDownloadUrl, TruncatedEnvelope, KeyMismatch, AuthenticationFailure
        """
        payload = self.validateShareLink(link)

        response = self.store.getObjectRaw(payload.location)
        if response.status != 200:
            raise InvalidDownloadUrl(
                f"Target download URL returned status code {response.status}. "
                f"Which usually means it doesn't exist or is private",
                statusCode=response.status,
            )

        sharedFile = self.openEnvelope(response.content, payload.secret)
        logger.info(f'Decrypted {sharedFile.size} bytes from {payload.location}')
        return sharedFile

    def deleteSharedFile(self, link: str, accessToken: str):
        """
        Remove the object behind a share link with a new commit.

        The ciphertext stays reachable through the repository history.
        """
        payload = self.validateShareLink(link)
        repository, filePath = extractRepositoryFromRawUrl(payload.location)

        self.accessChecker.checkWriteAccess(repository.owner, repository.name, accessToken)

        parentPath = '/'.join(filePath[:-1])
        remotePath = '/'.join(filePath)
        rev = f'{repository.branch}:{parentPath}'

        treeResponse = self.store.getTree(repository, rev, accessToken)
        if treeResponse.status != 200:
            raise InvalidFilePath(f"Provided file parent path doesn't exist: {rev}", statusCode=treeResponse.status)

        entries = (treeResponse.data or {}).get('tree', [])
        blobSha = next((entry.get('sha') for entry in entries if entry.get('path') == filePath[-1]), None)
        if not blobSha:
            raise InvalidFilePath(f"Provided file doesn't exist: {repository.branch}:{remotePath}")

        response = self.store.deleteObject(
            repository, remotePath, blobSha, f'Delete {remotePath}', repository.branch, accessToken
        )
        if not response.ok:
            raise DeleteFailed(f'File deletion failed with status code {response.status}', statusCode=response.status)

        logger.info(f'Deleted {repository.fullName}:{remotePath}')
