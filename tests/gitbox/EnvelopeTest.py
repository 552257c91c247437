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

import unittest

from gitbox import Envelope
from gitbox.Errors import TruncatedEnvelope


class EnvelopeTest(unittest.TestCase):

    def setUp(self):
        self.fields = (b'K' * 32, b'N' * 32, b'F' * 25, b'C' * 21)

    def testLayout(self):
        data = Envelope.encode(b'kk', b'nnn', b'f', b'body')
        self.assertEqual(data, b'\x02\x00\x03\x00\x01\x00' + b'kk' + b'nnn' + b'f' + b'body')

    def testLengthsAreLittleEndian(self):
        data = Envelope.encode(b'k' * 258, b'', b'', b'')
        self.assertEqual(data[:6], b'\x02\x01\x00\x00\x00\x00')

    def testDecode(self):
        envelope = Envelope.decode(Envelope.encode(*self.fields))

        self.assertEqual(envelope.keyHash, self.fields[0])
        self.assertEqual(envelope.nonceHash, self.fields[1])
        self.assertEqual(envelope.encFilename, self.fields[2])
        self.assertEqual(envelope.encFileContent, self.fields[3])

    def testContentRunsToEndOfBuffer(self):
        data = Envelope.encode(*self.fields) + b'tail'
        self.assertEqual(Envelope.decode(data).encFileContent, self.fields[3] + b'tail')

    def testEmptyContent(self):
        data = Envelope.encode(b'k', b'n', b'f', b'')
        self.assertEqual(Envelope.decode(data).encFileContent, b'')

    def testTruncated(self):
        data = Envelope.encode(*self.fields)
        declared = Envelope.HEADER_SIZE + sum(len(field) for field in self.fields[:3])

        for size in range(declared):
            with self.subTest(size=size):
                with self.assertRaises(TruncatedEnvelope):
                    Envelope.decode(data[:size])

        # Exactly the declared prefix is a valid envelope with empty content.
        self.assertEqual(Envelope.decode(data[:declared]).encFileContent, b'')

    def testOversizedFieldRejected(self):
        with self.assertRaises(ValueError):
            Envelope.encode(b'k', b'n', b'f' * (Envelope.MAX_FIELD_SIZE + 1), b'')


if __name__ == '__main__':
    unittest.main()
