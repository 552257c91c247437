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
Envelope codec: the single binary blob stored in the remote repository.

Layout (lengths are unsigned 16-bit little-endian):

    keyHashLen      : u16
    nonceHashLen    : u16
    encFilenameLen  : u16
    keyHash         : keyHashLen bytes
    nonceHash       : nonceHashLen bytes
    encFilename     : encFilenameLen bytes
    encFileContent  : everything up to the end of the buffer

There is no magic or version byte, any layout change breaks existing links.
"""

import struct

from dataclasses import dataclass

from gitbox.Errors import TruncatedEnvelope

HEADER_FMT = '<HHH'
HEADER_SIZE = struct.calcsize(HEADER_FMT) # 6 bytes
MAX_FIELD_SIZE = 0xFFFF


@dataclass(frozen=True)
class Envelope:
    keyHash: bytes
    nonceHash: bytes
    encFilename: bytes
    encFileContent: bytes


def encode(keyHash: bytes, nonceHash: bytes, encFilename: bytes, encFileContent: bytes) -> bytes:
    for fieldName, field in (('keyHash', keyHash), ('nonceHash', nonceHash), ('encFilename', encFilename)):
        if len(field) > MAX_FIELD_SIZE:
            raise ValueError(f'{fieldName} is {len(field)} bytes, the envelope allows at most {MAX_FIELD_SIZE}')

    header = struct.pack(HEADER_FMT, len(keyHash), len(nonceHash), len(encFilename))
    return b''.join((header, keyHash, nonceHash, encFilename, encFileContent))


def decode(data: bytes) -> Envelope:
    if len(data) < HEADER_SIZE:
        raise TruncatedEnvelope(f'Envelope is {len(data)} bytes, shorter than its {HEADER_SIZE}-byte header')

    keyHashLen, nonceHashLen, encFilenameLen = struct.unpack_from(HEADER_FMT, data, 0)

    keyHashEnd = HEADER_SIZE + keyHashLen
    nonceHashEnd = keyHashEnd + nonceHashLen
    encFilenameEnd = nonceHashEnd + encFilenameLen

    if len(data) < encFilenameEnd:
        raise TruncatedEnvelope(f'Envelope is {len(data)} bytes but its header declares at least {encFilenameEnd}')

    return Envelope(
        keyHash=bytes(data[HEADER_SIZE:keyHashEnd]),
        nonceHash=bytes(data[keyHashEnd:nonceHashEnd]),
        encFilename=bytes(data[nonceHashEnd:encFilenameEnd]),
        encFileContent=bytes(data[encFilenameEnd:]),
    )
