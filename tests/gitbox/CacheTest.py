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
import shutil
import tempfile
import unittest

from gitbox.Cache import BinaryCache


class BinaryCacheTest(unittest.TestCase):

    def setUp(self):
        self.directory = tempfile.mkdtemp()
        self.cache = BinaryCache(os.path.join(self.directory, 'cache'))
        self.fileId = '0123456789abcdef0123456789abcdef01234567'

    def tearDown(self):
        shutil.rmtree(self.directory, ignore_errors=True)

    def testPutAndGet(self):
        self.assertIsNone(self.cache.get(self.fileId))
        self.assertFalse(self.cache.contains(self.fileId))

        self.cache.put(self.fileId, b'\x00hello')

        self.assertTrue(self.cache.contains(self.fileId))
        self.assertEqual(self.cache.get(self.fileId), b'\x00hello')
        self.assertEqual(os.listdir(self.cache.cacheDir), [f'{self.fileId}.bin'])

    def testOverwrite(self):
        self.cache.put(self.fileId, b'one')
        self.cache.put(self.fileId, b'two')
        self.assertEqual(self.cache.get(self.fileId), b'two')

    def testDelete(self):
        self.cache.put(self.fileId, b'hello')
        self.cache.delete(self.fileId)
        self.cache.delete(self.fileId)

        self.assertIsNone(self.cache.get(self.fileId))

    def testRejectsPathLikeIds(self):
        for fileId in ('../settings', 'ABCDEF0123', '', None, 'abc'):
            with self.subTest(fileId=fileId):
                with self.assertRaises(ValueError):
                    self.cache.get(fileId)


if __name__ == '__main__':
    unittest.main()
