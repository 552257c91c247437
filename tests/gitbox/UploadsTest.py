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
import re
import shutil
import tempfile
import unittest

from gitbox.Cache import BinaryCache
from gitbox.Errors import UploadFailed
from gitbox.Settings import RepositorySettings
from gitbox.Uploads import FileMetadata, UploadTask, UploadTaskQueue, UploadTaskStatus

from tests.gitbox.Fakes import ACCESS_TOKEN, REPOSITORY, FakeTransport


def makeTaskDict(fileId, status='initial', retryCount=0, **fileChanges):
    fileData = {'id': fileId, 'name': 'notes.txt', 'size': 5, 'modifiedAt': 1700000000000}
    fileData.update(fileChanges)
    return {'status': status, 'file': fileData, 'retryCount': retryCount, 'downloadLink': None}


class UploadTaskQueueTest(unittest.TestCase):

    def setUp(self):
        self.directory = tempfile.mkdtemp()
        self.storagePath = os.path.join(self.directory, 'uploadTasks.json')
        self.cache = BinaryCache(os.path.join(self.directory, 'cache'))
        self.settings = RepositorySettings(repository=REPOSITORY, accessToken=ACCESS_TOKEN, valid=True)
        self.transport = FakeTransport()

    def tearDown(self):
        shutil.rmtree(self.directory, ignore_errors=True)

    def _createQueue(self):
        return UploadTaskQueue(self.transport, self.cache, lambda: self.settings, self.storagePath)

    def _writeTasks(self, data):
        with open(self.storagePath, 'w', encoding='utf-8') as f:
            if isinstance(data, str):
                f.write(data)
            else:
                json.dump(data, f)

    def testEnqueue(self):
        queue = self._createQueue()
        task = queue.enqueue('notes.txt', b'hello', modifiedAt=1700000000000)

        self.assertEqual(task.status, UploadTaskStatus.INITIAL)
        self.assertEqual(task.retryCount, 0)
        self.assertIsNone(task.downloadLink)
        self.assertEqual(task.file.name, 'notes.txt')
        self.assertEqual(task.file.size, 5)
        self.assertRegex(task.file.id, re.compile(r'^[0-9a-f]{40}$'))
        self.assertEqual(self.cache.get(task.file.id), b'hello')
        self.assertTrue(os.path.exists(self.storagePath))

    def testEnqueueFile(self):
        path = os.path.join(self.directory, 'report.pdf')
        with open(path, 'wb') as f:
            f.write(b'%PDF')

        task = self._createQueue().enqueueFile(path)
        self.assertEqual(task.file.name, 'report.pdf')
        self.assertEqual(task.file.size, 4)

    def testPersistence(self):
        queue = self._createQueue()
        task = queue.enqueue('notes.txt', b'hello', modifiedAt=1700000000000)
        queue.drain()

        restored = self._createQueue()
        self.assertEqual(list(restored.tasks), [task.file.id])
        self.assertEqual(restored.tasks[task.file.id], task)
        self.assertEqual(restored.tasks[task.file.id].status, UploadTaskStatus.UPLOADED)

    def testDrainUploads(self):
        queue = self._createQueue()
        task = queue.enqueue('notes.txt', b'hello')

        self.assertTrue(queue.drain())

        self.assertEqual(task.status, UploadTaskStatus.UPLOADED)
        self.assertEqual(task.downloadLink, 'https://alexrintt.io/gitbox/#/download?location=upload1&key=k&nonce=n')
        self.assertEqual(self.transport.calls, [('notes.txt', b'hello', REPOSITORY, ACCESS_TOKEN)])

        # Uploaded tasks are never attempted again.
        queue.drain()
        self.assertEqual(len(self.transport.calls), 1)

    def testUploadsInOrder(self):
        queue = self._createQueue()
        for name in ('a.txt', 'b.txt', 'c.txt'):
            queue.enqueue(name, name.encode())

        queue.drain()
        self.assertEqual([call[0] for call in self.transport.calls], ['a.txt', 'b.txt', 'c.txt'])

    def testStatusTransitions(self):
        self.transport.failures = 1
        queue = self._createQueue()

        statuses = []

        def onTaskChanged(task, **kwargs):
            statuses.append((task.status, task.retryCount))

        queue.taskChanged.connect(onTaskChanged)
        queue.enqueue('notes.txt', b'hello')
        queue.drain()
        queue.drain()

        self.assertEqual(
            statuses,
            [
                (UploadTaskStatus.INITIAL, 0),
                (UploadTaskStatus.LOADING, 0),
                (UploadTaskStatus.FAILED, 1),
                (UploadTaskStatus.LOADING, 1),
                (UploadTaskStatus.UPLOADED, 1),
            ],
        )

    def testRetryCap(self):
        self.transport.failures = 100
        queue = self._createQueue()
        task = queue.enqueue('notes.txt', b'hello')

        for _ in range(10):
            queue.drain()

        self.assertEqual(task.status, UploadTaskStatus.FAILED)
        self.assertEqual(task.retryCount, 6)
        self.assertEqual(len(self.transport.calls), 6)
        self.assertIsInstance(queue.lastError, UploadFailed)
        self.assertFalse(queue.isEligible(task))

    def testDrainUntilSettled(self):
        self.transport.failures = 100
        queue = self._createQueue()
        task = queue.enqueue('notes.txt', b'hello')

        remaining = queue.drainUntilSettled()

        self.assertEqual(remaining, [task])
        self.assertEqual(task.retryCount, 6)
        self.assertEqual(len(self.transport.calls), 6)

    def testRecoversAfterFailures(self):
        self.transport.failures = 2
        queue = self._createQueue()
        task = queue.enqueue('notes.txt', b'hello')

        self.assertEqual(queue.drainUntilSettled(), [])
        self.assertEqual(task.status, UploadTaskStatus.UPLOADED)
        self.assertEqual(task.retryCount, 2)

    def testNetworkErrorsAreRetried(self):
        self.transport.failures = 1
        self.transport.error = OSError('Connection reset by peer')
        queue = self._createQueue()
        task = queue.enqueue('notes.txt', b'hello')

        queue.drainUntilSettled()
        self.assertEqual(task.status, UploadTaskStatus.UPLOADED)

    def testMissingPayloadCountsAsFailure(self):
        queue = self._createQueue()
        task = queue.enqueue('notes.txt', b'hello')
        self.cache.delete(task.file.id)

        queue.drain()

        self.assertEqual(task.status, UploadTaskStatus.FAILED)
        self.assertEqual(task.retryCount, 1)
        self.assertEqual(self.transport.calls, [])
        self.assertIsInstance(queue.lastError, FileNotFoundError)

    def testSkipsWhenSettingsNotVerified(self):
        self.settings = RepositorySettings(repository=REPOSITORY, accessToken=ACCESS_TOKEN, valid=False)
        queue = self._createQueue()
        task = queue.enqueue('notes.txt', b'hello')

        self.assertFalse(queue.drain())
        self.assertEqual(queue.drainUntilSettled(), [task])
        self.assertEqual(task.status, UploadTaskStatus.INITIAL)
        self.assertEqual(self.transport.calls, [])

    def testSinglePassAtATime(self):
        queue = self._createQueue()
        nested = []

        def onUpload():
            nested.append((queue.isDraining(), queue.drain()))

        self.transport.onUpload = onUpload
        queue.enqueue('notes.txt', b'hello')

        self.assertTrue(queue.drain())
        self.assertEqual(nested, [(True, False)])
        self.assertFalse(queue.isDraining())

    def testLockReleasedOnUnexpectedError(self):
        def loadSettings():
            raise RuntimeError('boom')

        queue = UploadTaskQueue(self.transport, self.cache, loadSettings, self.storagePath)
        queue.enqueue('notes.txt', b'hello')

        with self.assertRaises(RuntimeError):
            queue.drain()
        self.assertFalse(queue.isDraining())

    def testUnexpectedErrorCountsAsFailure(self):
        queue = self._createQueue()

        def onUpload():
            if self.transport.calls[-1][0] == 'broken.txt':
                raise RuntimeError('boom')

        self.transport.onUpload = onUpload
        broken = queue.enqueue('broken.txt', b'x')
        healthy = queue.enqueue('ok.txt', b'hello')

        self.assertEqual(queue.drainUntilSettled(), [broken])
        self.assertEqual(broken.status, UploadTaskStatus.FAILED)
        self.assertEqual(broken.retryCount, 6)
        self.assertIsInstance(queue.lastError, RuntimeError)
        self.assertEqual(healthy.status, UploadTaskStatus.UPLOADED)
        self.assertFalse(queue.isDraining())

        with open(self.storagePath, encoding='utf-8') as f:
            self.assertEqual(json.load(f)[broken.file.id]['status'], 'failed')

    def testUndecodableFilename(self):
        queue = self._createQueue()
        task = queue.enqueue('caf\udce9.txt', b'x')
        other = queue.enqueue('ok.txt', b'hello')

        self.assertEqual(task.file.name, 'caf?.txt')
        self.assertEqual(queue.drainUntilSettled(), [])
        self.assertEqual(task.status, UploadTaskStatus.UPLOADED)
        self.assertEqual(other.status, UploadTaskStatus.UPLOADED)
        self.assertEqual([call[0] for call in self.transport.calls], ['caf?.txt', 'ok.txt'])

    def testEnqueueBytesFilename(self):
        task = self._createQueue().enqueue(b'caf\xe9.txt', b'x')
        self.assertEqual(task.file.name, 'caf?.txt')

    def testRemovedDuringPass(self):
        queue = self._createQueue()
        first = queue.enqueue('a.txt', b'a')
        second = queue.enqueue('b.txt', b'b')

        self.transport.onUpload = lambda: queue.remove(second.file.id)
        queue.drain()

        self.assertEqual([call[0] for call in self.transport.calls], ['a.txt'])
        self.assertEqual(list(queue.tasks), [first.file.id])
        self.assertIsNone(self.cache.get(second.file.id))

    def testRemoveAndClearUploaded(self):
        queue = self._createQueue()
        uploaded = queue.enqueue('a.txt', b'a')
        queue.drain()
        pending = queue.enqueue('b.txt', b'b')

        self.assertEqual(queue.clearUploaded(), [uploaded])
        self.assertEqual(list(queue.tasks), [pending.file.id])

        self.assertEqual(queue.remove(pending.file.id), pending)
        self.assertIsNone(queue.remove(pending.file.id))
        self.assertEqual(queue.tasks, {})
        self.assertEqual(self._createQueue().tasks, {})

    def testPendingAndSharedTasks(self):
        self.transport.failures = 1
        queue = self._createQueue()
        failed = queue.enqueue('a.txt', b'a')
        queue.drain()
        fresh = queue.enqueue('b.txt', b'b')

        self.assertEqual(queue.pendingTasks(), [failed, fresh])
        self.assertEqual(queue.sharedTasks(), [failed])

    def testInterruptedUploadIsRetried(self):
        fileId = 'a' * 40
        self.cache.put(fileId, b'hello')
        self._writeTasks({fileId: makeTaskDict(fileId, status='loading', retryCount=2)})

        queue = self._createQueue()
        self.assertTrue(queue.isEligible(queue.tasks[fileId]))

        queue.drain()
        self.assertEqual(queue.tasks[fileId].status, UploadTaskStatus.UPLOADED)

    def testRehydrationDropsMalformedEntries(self):
        good = 'a' * 40
        data = {
            good: makeTaskDict(good, status='failed', retryCount=3),
            'b' * 40: ['not', 'an', 'object'],
            'c' * 40: {'status': 'initial', 'file': 'notes.txt', 'retryCount': 0},
            'd' * 40: makeTaskDict('d' * 40, size='5'),
            'e' * 40: makeTaskDict('e' * 40, name=None),
            'f' * 40: {'status': 'initial', 'file': makeTaskDict('f' * 40)['file']},
            '1' * 40: makeTaskDict('1' * 40, status='exploded'),
            '2' * 40: makeTaskDict('3' * 40),
            '4' * 40: makeTaskDict('4' * 40, retryCount=True),
            '5' * 40: makeTaskDict('5' * 40, size=float('inf')),
            '6' * 40: makeTaskDict('6' * 40, retryCount=float('nan')),
            '7' * 40: makeTaskDict('7' * 40, modifiedAt=float('-inf')),
            'abc': makeTaskDict('abc'),
            'A' * 40: makeTaskDict('A' * 40),
        }
        self._writeTasks(data)

        queue = self._createQueue()

        self.assertEqual(list(queue.tasks), [good])
        self.assertEqual(
            queue.tasks[good],
            UploadTask(
                status=UploadTaskStatus.FAILED,
                file=FileMetadata(id=good, name='notes.txt', size=5, modifiedAt=1700000000000),
                retryCount=3,
            ),
        )

    def testRehydratedQueueSkipsUncacheableIds(self):
        good = 'b' * 40
        self._writeTasks({'abc': makeTaskDict('abc'), good: makeTaskDict(good)})
        self.cache.put(good, b'hello')

        queue = self._createQueue()

        self.assertEqual(queue.drainUntilSettled(), [])
        self.assertEqual(list(queue.tasks), [good])
        self.assertEqual(queue.tasks[good].status, UploadTaskStatus.UPLOADED)

    def testRehydrationOfUnreadableFile(self):
        for content in ('not json', '[]', '"tasks"', ''):
            with self.subTest(content=content):
                self._writeTasks(content)
                self.assertEqual(self._createQueue().tasks, {})


class UploadTaskTest(unittest.TestCase):

    def testDictRoundTrip(self):
        task = UploadTask(
            status=UploadTaskStatus.UPLOADED,
            file=FileMetadata(id='a' * 40, name='notes.txt', size=5, modifiedAt=1),
            retryCount=1,
            downloadLink='https://alexrintt.io/gitbox/#/download?location=x',
        )
        self.assertEqual(UploadTask.fromDict(json.loads(json.dumps(task.toDict()))), task)

    def testStatusValues(self):
        self.assertEqual([status.value for status in UploadTaskStatus], ['initial', 'loading', 'failed', 'uploaded'])


if __name__ == '__main__':
    unittest.main()
