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
Validation of untrusted input: share links, raw object URLs, base64 payloads and the
repository/file names that end up inside URLs.

Every check here is pure and synchronous and runs before any network fetch or decryption.
"""

import base64
import binascii
import re

from typing import List, Optional, Tuple
from urllib.parse import urlsplit, urlencode, parse_qs

from gitbox.Errors import (
    InvalidUrl, InvalidSelfDomain, UnexpectedHostname, UnexpectedProtocol, MissingPayload, InvalidBase64Payload
)
from gitbox.Settings import GitRepository

DOWNLOAD_ROUTE = '/download'

LOCATION_PARAM = 'location'
KEY_PARAM = 'key'
NONCE_PARAM = 'nonce'

MAX_FILENAME_LENGTH = 1024
MAX_GITHUB_USERNAME_LENGTH = 38

BASE64_REGEX = re.compile(r'([A-Za-z0-9+/]{4})*([A-Za-z0-9+/]{3}=|[A-Za-z0-9+/]{2}==)?')
GITHUB_USERNAME_REGEX = re.compile(r'[a-z\d](?:[a-z\d]|-(?=[a-z\d])){0,38}', re.IGNORECASE)
GIT_REPOSITORY_NAME_REGEX = re.compile(r'[a-zA-Z0-9._-]+(?:/[a-zA-Z0-9._-]+)*')

FILENAME_RESERVED_REGEX = re.compile(r'[<>:"/\\|?*\x00-\x1f\x7f]')
WINDOWS_RESERVED_NAMES = re.compile(r'^(con|prn|aux|nul|com\d|lpt\d)(\..*)?$', re.IGNORECASE)
BRANCH_FORBIDDEN_REGEX = re.compile(r'[\x00-\x20\x7f~^:?*\[\\]')


def isBase64(value: str) -> bool:
    return BASE64_REGEX.fullmatch(value) is not None


def validateUrl(url):
    """
    Parse an absolute URL.

    Returns:
        SplitResult of the URL

    Raises:
        InvalidUrl: not a string, unparsable, or missing scheme or host
    """
    if not isinstance(url, str):
        raise InvalidUrl()

    try:
        parsed = urlsplit(url.strip())
        hostname = parsed.hostname
    except ValueError:
        raise InvalidUrl() from None

    if not parsed.scheme or not hostname:
        raise InvalidUrl()

    return parsed


def validateSelfUrl(selfUrl, expectedHostname):
    """The URL must be served from the application's own host"""
    parsed = validateUrl(selfUrl)

    # Protocol is not enforced here, some deployments report the page as http.
    if parsed.hostname != expectedHostname.lower():
        raise InvalidSelfDomain()

    return parsed


def validateRawObjectUrl(location, allowedHostnames):
    """
    The raw object location must be an https URL on an allow-listed host.

    Raises:
        InvalidUrl, UnexpectedProtocol, UnexpectedHostname
    """
    parsed = validateUrl(location)

    if parsed.hostname not in {hostname.lower() for hostname in allowedHostnames}:
        raise UnexpectedHostname()

    if parsed.scheme.lower() != 'https':
        raise UnexpectedProtocol(
            f'The target download URL is not a HTTPS URL, refusing to connect over other protocols. '
            f'Current is: {parsed.scheme}:'
        )

    return parsed


def validateKeyAndNonceBase64(keyBase64, nonceBase64):
    if not isinstance(keyBase64, str) or not isinstance(nonceBase64, str):
        raise MissingPayload()

    if not isBase64(keyBase64) or not isBase64(nonceBase64):
        raise InvalidBase64Payload()


def decodeBase64Payload(value: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidBase64Payload() from None


def parseShareLink(link) -> dict:
    """
    Extract the query parameters of the fragment route of a share link.

    Returns:
        dict with LOCATION_PARAM, KEY_PARAM and NONCE_PARAM, missing ones are None
    """
    parsed = validateUrl(link)

    route, _, query = parsed.fragment.partition('?')
    if route.rstrip('/') != DOWNLOAD_ROUTE:
        raise InvalidUrl(f'The provided link does not point to the {DOWNLOAD_ROUTE} route')

    params = parse_qs(query, keep_blank_values=True)
    return {name: params[name][0] if name in params else None for name in (LOCATION_PARAM, KEY_PARAM, NONCE_PARAM)}


def buildShareLink(appUrl, location, keyBase64, nonceBase64) -> str:
    query = urlencode([(LOCATION_PARAM, location), (KEY_PARAM, keyBase64), (NONCE_PARAM, nonceBase64)])
    return f'{appUrl.rstrip("/")}/#{DOWNLOAD_ROUTE}?{query}'


def extractRepositoryFromRawUrl(location) -> Tuple[GitRepository, List[str]]:
    """
    Split a raw object URL of the form https://<host>/<owner>/<repo>/<branch>/<path...>.

    Returns:
        (sanitized repository, remote file path segments)
    """
    parsed = validateUrl(location)

    empty, *parts = parsed.path.split('/')
    if empty != '':
        raise InvalidUrl(f'The provided download URL {location} is not valid: path must be absolute')

    if len(parts) < 4 or any(not part for part in parts[:3]):
        raise InvalidUrl(
            f'The provided download URL {location} is not valid: '
            f'expected /<owner>/<repo>/<branch>/<path>, got {parsed.path}'
        )

    owner, name, branch, *filePath = parts
    if any(not segment or segment in ('.', '..') for segment in filePath):
        raise InvalidUrl(f'The provided download URL {location} is not valid: bad file path {"/".join(filePath)}')

    repository = sanitizeGitRepository(GitRepository(owner=owner, name=name, branch=branch))
    return repository, filePath


def isValidGitHubUsername(username: str) -> bool:
    return GITHUB_USERNAME_REGEX.fullmatch(username) is not None


def isValidGitRepositoryName(name: str) -> bool:
    return GIT_REPOSITORY_NAME_REGEX.fullmatch(name) is not None


def toValidUtf8(text: str) -> str:
    """Replace lone surrogates (undecodable bytes of an OS file name) with '?'"""
    return text.encode('utf-8', 'replace').decode('utf-8')


def sanitizeFilename(filename: str, replacement: str = '-') -> str:
    """Make a name safe as a single path segment on every platform"""
    safe = FILENAME_RESERVED_REGEX.sub(replacement, toValidUtf8(filename))
    safe = re.sub(f'(?:{re.escape(replacement)}){{2,}}', replacement, safe)
    safe = safe.strip(replacement + ' ')

    if safe in ('', '.', '..'):
        safe = replacement
    elif WINDOWS_RESERVED_NAMES.match(safe):
        safe += replacement

    return safe[:MAX_FILENAME_LENGTH]


def sanitizeGitHubUsername(username: str) -> str:
    safe = re.sub(r'[^a-zA-Z\d-]', '', username)
    safe = re.sub(r'-{2,}', '-', safe).strip('-')
    return safe[:MAX_GITHUB_USERNAME_LENGTH].rstrip('-') or 'f'


def sanitizeRepoName(name: str) -> str:
    safe = re.sub(r'[^a-zA-Z0-9\-_.]', '-', name).lower()
    if safe in ('', '.', '..'):
        return '-'
    return safe


def sanitizeGitBranchName(branchName: Optional[str]) -> str:
    if not branchName:
        return ''

    safe = BRANCH_FORBIDDEN_REGEX.sub('-', branchName)
    safe = re.sub(r'\.{2,}', '.', safe)
    return '/'.join(segment for segment in safe.split('/') if segment not in ('', '.'))


def sanitizeGitRepository(repository: GitRepository) -> GitRepository:
    return GitRepository(
        owner=sanitizeGitHubUsername(repository.owner),
        name=sanitizeRepoName(repository.name),
        branch=sanitizeGitBranchName(repository.branch),
    )
