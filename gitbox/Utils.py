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
import sys

import bitmath

from gitbox.Kernel import getLogger
from gitbox.Settings import SettingsGetter

ONE_KB = bitmath.KiB(1).bytes
ONE_GB = bitmath.GiB(1).bytes
ONE_TB = bitmath.TiB(1).bytes

logger = getLogger(__name__)


def flushPrint(text):
    try:
        print(text, flush=True)
    except UnicodeEncodeError as e:
        # Terminals without UTF-8 (e.g. cp950 consoles) choke on some file names.
        logger.debug(f"UnicodeEncodeError during print, using fallback encoding: {e}, {sys.stdout.encoding=}")

        buf = getattr(sys.stdout, "buffer", None)
        if buf is not None:
            buf.write(text.encode("utf-8", errors="replace"))
            buf.write(b"\n")
            buf.flush()
            return

        print(text.encode(sys.stdout.encoding, errors='replace').decode(sys.stdout.encoding), flush=True)


def formatSize(size, decimal=None, plural=None):
    if decimal is None:
        if size < ONE_GB:
            decimal = 0
        elif size < ONE_TB:
            decimal = 1
        else:
            decimal = 2

    if plural is None:
        plural = False if size > ONE_KB else True

    sizeStr = bitmath.Byte(size).best_prefix(system=bitmath.SI).format(
        "{value:.%df}{%s}" % (decimal, 'unit_plural' if plural else 'unit')
    )

    if not sizeStr.endswith('Byte') and not sizeStr.endswith('Bytes') and not sizeStr.endswith('Bits'):
        return sizeStr.replace('B', '').upper()
    else:
        return sizeStr.replace('Byte', ' Byte').replace('Bit', ' Byte')


def sendException(logger, e, action=None, errorPrefix="Oops, something went wrong"):
    if e and errorPrefix:
        flushPrint(f'{errorPrefix}: {e}')
    elif e:
        flushPrint(f'{e}')
    else:
        logger.error(f'Incorrect argument: {errorPrefix=} {e=}')

    if action:
        flushPrint(action)
    else:
        flushPrint('Please try again or try later.')

    supportURL = SettingsGetter.getInstance().getSupportURL()
    flushPrint(f'\nIf you still get the same problem, please open an issue at {supportURL}.\n')

    logger.exception(e)

    if os.getenv('RAISE_EXCEPTION', 'False') == 'True' and isinstance(e, BaseException):
        raise e


def getEnv(envVar, default):
    """Safely get value from environment variable with automatic type detection based on default"""
    try:
        value = os.getenv(envVar)
        if value is not None:
            if default is None:
                return value

            if isinstance(default, bool):
                return value == "True"
            elif isinstance(default, int):
                return int(value)
            elif isinstance(default, float):
                return float(value)
            else:
                return type(default)(value)
        return default
    except (ValueError, TypeError):
        return default
