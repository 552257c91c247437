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
import re

from typing import Optional

from gitbox.Kernel import getLogger

logger = getLogger(__name__)

FILE_ID_REGEX = re.compile(r'[0-9a-f]{8,128}')


class BinaryCache:
    """
    Durable store of pending upload payloads, one file per task id.

    Written once when a file is queued and read once per upload attempt.
    """

    SUFFIX = '.bin'

    def __init__(self, cacheDir):
        self.cacheDir = cacheDir

    def _path(self, fileId):
        if not isinstance(fileId, str) or not FILE_ID_REGEX.fullmatch(fileId):
            raise ValueError(f'Invalid file id: {fileId!r}')
        return os.path.join(self.cacheDir, f'{fileId}{self.SUFFIX}')

    def put(self, fileId, content: bytes):
        path = self._path(fileId)
        os.makedirs(self.cacheDir, exist_ok=True)

        tmp = f'{path}.tmp'
        with open(tmp, 'wb') as f:
            f.write(content)
        os.replace(tmp, path)
        logger.debug(f'Cached {len(content)} bytes as {fileId}')

    def get(self, fileId) -> Optional[bytes]:
        path = self._path(fileId)
        try:
            with open(path, 'rb') as f:
                return f.read()
        except FileNotFoundError:
            return None

    def contains(self, fileId):
        return os.path.exists(self._path(fileId))

    def delete(self, fileId):
        try:
            os.remove(self._path(fileId))
        except FileNotFoundError:
            pass
