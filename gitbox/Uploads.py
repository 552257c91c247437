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
Upload task queue: drives the transport protocol for a batch of local files.

Per task state machine:

    initial -> loading -> uploaded
    initial -> loading -> failed -> loading -> ... (until retryCount exceeds maxRetries)

Only one drain pass runs at a time and it uploads tasks one after another, so this client
never writes to the repository concurrently. The task list is saved after every change.
"""

import json
import math
import os
import threading
import time

from dataclasses import dataclass
from enum import Enum
from numbers import Real
from typing import Callable, Dict, List, Optional

import requests

from signalslot import Signal

from gitbox.Cache import FILE_ID_REGEX, BinaryCache
from gitbox.Errors import GitboxError
from gitbox.Kernel import FileIdGenerator, getLogger
from gitbox.Settings import MAX_UPLOAD_RETRIES, RepositorySettings
from gitbox.Transport import TransportProtocol
from gitbox.Validation import toValidUtf8

logger = getLogger(__name__)


class UploadTaskStatus(Enum):
    INITIAL = 'initial' # Selected, waiting for its first attempt
    LOADING = 'loading' # Upload attempt in progress
    FAILED = 'failed'
    UPLOADED = 'uploaded' # Share link available


@dataclass
class FileMetadata:
    id: str
    name: str
    size: int
    modifiedAt: int # milliseconds since epoch


@dataclass
class UploadTask:
    status: UploadTaskStatus
    file: FileMetadata
    retryCount: int = 0
    downloadLink: Optional[str] = None

    def toDict(self):
        return {
            'status': self.status.value,
            'file': {
                'id': self.file.id,
                'name': self.file.name,
                'size': self.file.size,
                'modifiedAt': self.file.modifiedAt,
            },
            'retryCount': self.retryCount,
            'downloadLink': self.downloadLink,
        }

    @staticmethod
    def fromDict(data) -> 'UploadTask':
        """
        Rebuild a task from its saved form.

        Raises:
            ValueError: the entry does not have the expected shape
        """

        def isNumber(value):
            return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)

        if not isinstance(data, dict):
            raise ValueError(f'task must be an object, got {type(data).__name__}')

        fileData = data.get('file')
        if not isinstance(fileData, dict):
            raise ValueError('task.file must be an object')
        if not isinstance(fileData.get('id'), str) or not FILE_ID_REGEX.fullmatch(fileData['id']):
            raise ValueError('task.file.id must be a lowercase hex string')
        if not isinstance(fileData.get('name'), str):
            raise ValueError('task.file.name must be a string')
        if not isNumber(fileData.get('size')):
            raise ValueError('task.file.size must be a number')
        if not isNumber(fileData.get('modifiedAt', 0)):
            raise ValueError('task.file.modifiedAt must be a number')
        if not isNumber(data.get('retryCount')):
            raise ValueError('task.retryCount must be a number')
        if data.get('downloadLink') is not None and not isinstance(data['downloadLink'], str):
            raise ValueError('task.downloadLink must be a string')

        try:
            status = UploadTaskStatus(data.get('status'))
        except ValueError:
            raise ValueError(f"task.status {data.get('status')!r} is unknown") from None

        return UploadTask(
            status=status,
            file=FileMetadata(
                id=fileData['id'],
                name=toValidUtf8(fileData['name']),
                size=int(fileData['size']),
                modifiedAt=int(fileData.get('modifiedAt', 0)),
            ),
            retryCount=int(data['retryCount']),
            downloadLink=data.get('downloadLink'),
        )


class UploadTaskQueue:

    def __init__(
        self,
        transport: TransportProtocol,
        cache: BinaryCache,
        settingsLoader: Callable[[], RepositorySettings],
        storagePath,
        maxRetries=MAX_UPLOAD_RETRIES,
        idGenerator=None,
    ):
        self.transport = transport
        self.cache = cache
        self.settingsLoader = settingsLoader
        self.storagePath = storagePath
        self.maxRetries = maxRetries
        self.idGenerator = idGenerator or FileIdGenerator()

        self.lastError: Optional[Exception] = None
        self.taskChanged = Signal(args=['task'])

        self._drainLock = threading.Lock()
        self.tasks: Dict[str, UploadTask] = self._restore()

    # Persistence

    def _restore(self) -> Dict[str, UploadTask]:
        if not os.path.exists(self.storagePath):
            return {}

        try:
            with open(self.storagePath, 'r', encoding='utf-8') as f:
                previous = json.load(f)
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            logger.warning(f'Error trying to recover previous upload tasks from {self.storagePath}: {e}')
            return {}

        if not isinstance(previous, dict):
            logger.warning(f'Ignoring upload tasks in {self.storagePath}: expected an object')
            return {}

        tasks = {}
        for fileId, entry in previous.items():
            try:
                task = UploadTask.fromDict(entry)
            except ValueError as e:
                logger.warning(f'Dropping malformed upload task {fileId!r}: {e}')
                continue

            if task.file.id != fileId:
                logger.warning(f'Dropping upload task {fileId!r}: stored under a different id {task.file.id!r}')
                continue

            tasks[fileId] = task

        logger.debug(f'Restored {len(tasks)} upload tasks from {self.storagePath}')
        return tasks

    def _persist(self):
        os.makedirs(os.path.dirname(self.storagePath) or '.', exist_ok=True)

        tmp = f'{self.storagePath}.tmp'
        with open(tmp, 'w', encoding='utf-8') as f:
            json.dump({fileId: task.toDict() for fileId, task in self.tasks.items()}, f, indent=2)
        os.replace(tmp, self.storagePath)

    def _update(self, task: UploadTask, **changes):
        for name, value in changes.items():
            setattr(task, name, value)

        self._persist()
        self.taskChanged.emit(task=task)

    # Queries

    def pendingTasks(self) -> List[UploadTask]:
        return [task for task in self.tasks.values() if task.status != UploadTaskStatus.UPLOADED]

    def sharedTasks(self) -> List[UploadTask]:
        return [task for task in self.tasks.values() if task.status != UploadTaskStatus.INITIAL]

    def isEligible(self, task: UploadTask):
        return task.status != UploadTaskStatus.UPLOADED and task.retryCount <= self.maxRetries

    def isDraining(self):
        return self._drainLock.locked()

    # Mutations

    def enqueue(self, name: str, content: bytes, modifiedAt=None) -> UploadTask:
        name = toValidUtf8(os.fsdecode(name))
        fileId = self.idGenerator.generate()
        self.cache.put(fileId, content)

        task = UploadTask(
            status=UploadTaskStatus.INITIAL,
            file=FileMetadata(
                id=fileId,
                name=name,
                size=len(content),
                modifiedAt=int(modifiedAt if modifiedAt is not None else time.time() * 1000),
            ),
        )
        self.tasks[fileId] = task
        self._update(task)

        logger.info(f'Queued {name} ({len(content)} bytes) as {fileId}')
        return task

    def enqueueFile(self, path) -> UploadTask:
        with open(path, 'rb') as f:
            content = f.read()
        return self.enqueue(os.path.basename(path), content)

    def remove(self, fileId) -> Optional[UploadTask]:
        task = self.tasks.pop(fileId, None)
        if task is None:
            return None

        self.cache.delete(fileId)
        self._persist()
        self.taskChanged.emit(task=task)
        logger.info(f'Removed upload task {fileId}')

        return task

    def clearUploaded(self) -> List[UploadTask]:
        uploaded = [task for task in self.tasks.values() if task.status == UploadTaskStatus.UPLOADED]
        for task in uploaded:
            self.remove(task.file.id)
        return uploaded

    # Uploading

    def _fail(self, task: UploadTask, error: Exception) -> bool:
        self.lastError = error
        self._update(task, status=UploadTaskStatus.FAILED, retryCount=task.retryCount + 1)
        return False

    def _attempt(self, task: UploadTask, settings: RepositorySettings) -> bool:
        self._update(task, status=UploadTaskStatus.LOADING)

        try:
            content = self.cache.get(task.file.id)
            if content is None:
                raise FileNotFoundError(f'No cached payload for {task.file.name}')

            downloadLink = self.transport.generateShareLink(
                task.file.name, content, settings.repository, settings.accessToken
            )
        except (GitboxError, requests.RequestException, OSError) as e:
            logger.warning(f'Upload of {task.file.name} failed (attempt {task.retryCount + 1}): {e}')
            return self._fail(task, e)
        except Exception as e:
            # Any per-task error counts against the retry cap.
            logger.exception(f'Unexpected error uploading {task.file.name} ({task.file.id})')
            return self._fail(task, e)

        self._update(task, status=UploadTaskStatus.UPLOADED, downloadLink=downloadLink)
        return True

    def drain(self) -> bool:
        """
        Run one pass over the pending tasks.

        Returns:
            False if another pass is in flight or the repository settings are not verified
        """
        if not self._drainLock.acquire(blocking=False):
            logger.debug('Upload pass already in progress')
            return False

        try:
            settings = self.settingsLoader()
            if not settings.valid:
                logger.warning('Repository settings are not verified, skipping upload pass')
                return False

            for task in self.pendingTasks():
                # Removed while an earlier task was uploading.
                if self.tasks.get(task.file.id) is not task:
                    continue

                if not self.isEligible(task):
                    continue

                self._attempt(task, settings)

            return True
        finally:
            self._drainLock.release()

    def drainUntilSettled(self) -> List[UploadTask]:
        """
        Repeat passes until every task is uploaded or out of retries.

        Returns:
            Tasks left failed
        """
        while any(self.isEligible(task) for task in self.tasks.values()):
            if not self.drain():
                break

        return [task for task in self.tasks.values() if task.status != UploadTaskStatus.UPLOADED]
