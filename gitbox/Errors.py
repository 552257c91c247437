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
Error taxonomy shared by the link validator, the transport protocol and the GitHub collaborators.

Every error is a structured (code, message) pair. Callers dispatch on the class, user-facing
output uses the code so that it stays stable across translations of the message.
"""


class GitboxError(Exception):
    """Base exception for all protocol errors"""

    code = 'GITBOX_ERROR'
    defaultMessage = 'Unknown error'

    def __init__(self, message=None, statusCode=None):
        self.message = message or self.defaultMessage
        self.statusCode = statusCode
        super().__init__(self.message)

    def toDict(self):
        return {'code': self.code, 'message': self.message}

    def __str__(self):
        return f'{self.code} {self.message}'


# Link validation


class InvalidUrl(GitboxError):
    code = 'INVALID_URL'
    defaultMessage = 'Provided download URL is not a valid URL, the link is broken'


class InvalidSelfDomain(GitboxError):
    code = 'INVALID_SELF_DOMAIN'
    defaultMessage = 'Invalid domain URL, the link points to an unexpected application domain'


class UnexpectedHostname(GitboxError):
    code = 'UNEXPECTED_HOSTNAME'
    defaultMessage = (
        'The target direct download URL does not come from a trusted domain and is probably crafted and malicious'
    )


class UnexpectedProtocol(GitboxError):
    code = 'UNEXPECTED_PROTOCOL'
    defaultMessage = 'The target download URL is not a HTTPS URL, refusing to connect over other protocols'


class MissingPayload(GitboxError):
    code = 'MISSING_PAYLOAD'
    defaultMessage = 'Key or nonce is missing in the URL'


class InvalidBase64Payload(GitboxError):
    code = 'INVALID_BASE64_PAYLOAD'
    defaultMessage = 'Key or nonce provided by the URL is not a valid base64 string'


# Envelope and cryptography


class TruncatedEnvelope(GitboxError):
    code = 'TRUNCATED_ENVELOPE'
    defaultMessage = 'The remote file is shorter than its own header declares'


class KeyMismatch(GitboxError):
    code = 'KEY_MISMATCH'
    defaultMessage = 'Incorrect key and nonce. The target file cannot be decrypted using the provided keys'


class AuthenticationFailure(GitboxError):
    code = 'AUTHENTICATION_FAILURE'
    defaultMessage = 'The encrypted data failed its integrity check'


# Remote store


class InvalidDownloadUrl(GitboxError):
    code = 'INVALID_DOWNLOAD_URL'
    defaultMessage = 'Target download URL does not exist or is private'


class InvalidFilePath(GitboxError):
    code = 'INVALID_FILE_PATH'
    defaultMessage = 'Provided file path does not exist in the repository'


class UploadFailed(GitboxError):
    code = 'UPLOAD_FAILED'
    defaultMessage = 'File upload failed'


class DeleteFailed(GitboxError):
    code = 'DELETE_FAILED'
    defaultMessage = 'File deletion failed'


# Repository access check


class InvalidToken(GitboxError):
    code = 'INVALID_TOKEN'
    defaultMessage = 'The provided token is not valid or expired'


class PrivateOrNonExistentRepository(GitboxError):
    code = 'PRIVATE_OR_NON_EXISTENT_REPOSITORY'
    defaultMessage = "The provided repository is private or doesn't exist. Only public repositories are allowed."


class UserHasNoWritePermission(GitboxError):
    code = 'USER_HAS_NO_WRITE_PERMISSION'
    defaultMessage = "The provided access token doesn't have write permission on the target repository."
