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

import argparse
import json
import os
import logging
import logging.config
import platform

from gitbox.Kernel import PUBLIC_VERSION, LOG_LEVEL_MAPPING, getLogger, configureGlobalLogLevel, StorageLocator
from gitbox.Settings import SettingsGetter
from gitbox.Utils import flushPrint, getEnv
from gitbox.Validation import isValidGitHubUsername, isValidGitRepositoryName
from gitbox.crypto import BACKENDS, CryptoInterface

logger = getLogger(__name__)


def loadEnvFile():
    """
    Load environment variables from a .env file found through StorageLocator.
    Variables already defined in os.environ are left untouched.
    """
    envFilePath = StorageLocator.getInstance().findConfig('.env')

    if not os.path.exists(envFilePath):
        return

    try:
        loadedCount = 0

        with open(envFilePath, 'r', encoding='utf-8') as f:
            for lineNum, line in enumerate(f, 1):
                line = line.strip()

                if not line or line.startswith('#'):
                    continue

                if '=' not in line:
                    flushPrint(f'Warning: .env line {lineNum}: Invalid format (missing =): {line}')
                    continue

                key, _, value = line.partition('=')
                key = key.strip()
                value = value.strip()

                if not key:
                    flushPrint(f'Warning: .env line {lineNum}: Empty key')
                    continue

                if (value.startswith('"') and value.endswith('"')) or \
                   (value.startswith("'") and value.endswith("'")):
                    value = value[1:-1]

                # Environment takes precedence
                if key not in os.environ:
                    os.environ[key] = value
                    loadedCount += 1
                else:
                    logger.debug(f'.env: Skipped {key} (already set in environment)')

        logger.debug(f'Loaded {loadedCount} environment variables from {envFilePath}')

    except (OSError, UnicodeDecodeError) as e:
        flushPrint(f'Error: Unexpected error loading .env file: {e}')
        logger.error(f'Unexpected error loading .env file: {e}', exc_info=True)


def configureLogging(logLevel):
    """Configure logging level from --log-level or GITBOX_LOGGING_LEVEL

    Either value may be a level name (DEBUG, INFO, WARNING, ERROR) or the path of a
    logging configuration JSON file.
    """

    def suppressNoisyLogger():
        logging.getLogger('urllib3').setLevel(logging.INFO)
        logging.getLogger('urllib3.connectionpool').setLevel(logging.INFO)
        logging.getLogger('sentry_sdk').setLevel(logging.INFO)

    if logLevel is None:
        logLevel = getEnv('GITBOX_LOGGING_LEVEL', None)

    if logLevel is None:
        suppressNoisyLogger()
        return None

    if os.path.isfile(logLevel):
        try:
            with open(logLevel, 'r') as configFile:
                configDict = json.load(configFile)

            logging.config.dictConfig(configDict)
            logger.info(f"Logging configured from file: {logLevel}")
            suppressNoisyLogger()
            return logLevel

        except (json.JSONDecodeError, OSError, ValueError, KeyError) as e:
            flushPrint(f"Failed to load logging config from {logLevel}: {e}")
            flushPrint("Falling back to default logging level configuration")

    if logLevel.upper() in LOG_LEVEL_MAPPING:
        configureGlobalLogLevel(LOG_LEVEL_MAPPING[logLevel.upper()])
        logger.info(f"Logging level set to {logLevel}")
    else:
        logger.warning(f"Invalid logging level '{logLevel}', using WARNING as default")
        configureGlobalLogLevel(logging.WARNING)

    suppressNoisyLogger()

    return logLevel


def showVersion():
    """Display version information and available crypto backends"""
    settingsGetter = SettingsGetter.getInstance()

    flushPrint(f"GitBox v{PUBLIC_VERSION}")
    flushPrint("")

    flushPrint("Crypto backends:")
    for name in BACKENDS:
        try:
            CryptoInterface(name)
            status = "[OK] Available"
        except RuntimeError:
            status = "[FAIL] Missing dependency"

        default = " (selected)" if name == settingsGetter.cryptoBackend else ""
        flushPrint(f"  {name:<12} {status}{default}")

    flushPrint("")
    uname = platform.uname()
    flushPrint(f"Architecture: {uname.system} {uname.release} {uname.machine}")
    flushPrint(f"Application: {settingsGetter.appUrl}")
    flushPrint(f"Support: {settingsGetter.getSupportURL()}")


def configureCLIParser():
    """Configure the CLI parser with a global parent shared by every command

    Returns:
        tuple: (parser, globalsParent)
    """

    def validateLogLevel(logLevel):
        # Allow file paths (they'll be validated later)
        if os.path.exists(logLevel):
            return logLevel

        validLevels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if logLevel.upper() not in validLevels:
            raise argparse.ArgumentTypeError(
                f"Invalid log level '{logLevel}'. Valid levels are: {', '.join(validLevels)}"
            )
        return logLevel.upper()

    def validateRepository(value):
        owner, sep, name = value.partition('/')
        if not sep or not owner or not name or '/' in name:
            raise argparse.ArgumentTypeError(f"Invalid repository '{value}', expected OWNER/NAME")
        if not isValidGitHubUsername(owner):
            raise argparse.ArgumentTypeError(f"Invalid repository owner '{owner}'")
        if not isValidGitRepositoryName(name):
            raise argparse.ArgumentTypeError(f"Invalid repository name '{name}'")
        return owner, name

    globalsParent = argparse.ArgumentParser(add_help=False)
    globalsParent.add_argument("--version", action="store_true", help="Show version information")
    globalsParent.add_argument(
        "--log-level",
        type=validateLogLevel,
        help="Set logging level (DEBUG, INFO, WARNING, ERROR) or path to logging config JSON file (default: WARNING)",
        metavar="LEVEL_OR_FILE",
        dest="logLevel"
    )
    globalsParent.add_argument(
        "--crypto-backend",
        choices=list(BACKENDS),
        help="Cipher used for new uploads and for opening links (default: secretbox)",
        dest="cryptoBackend"
    )

    parser = argparse.ArgumentParser(
        prog="gitbox",
        description="GitBox shares end-to-end encrypted files through a public git repository.",
        parents=[globalsParent],
    )
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    configureSubparser = subparsers.add_parser(
        'configure', help='Verify and save the repository used for uploads', parents=[globalsParent]
    )
    configureSubparser.add_argument("repository", metavar="OWNER/NAME", type=validateRepository)
    configureSubparser.add_argument(
        "--token",
        metavar="TOKEN",
        help="Access token with push permission (default: GITBOX_TOKEN, otherwise prompted)",
    )

    settingsSubparser = subparsers.add_parser(
        'settings', help='Show the saved repository settings', parents=[globalsParent]
    )
    settingsSubparser.add_argument("--clear", action="store_true", help="Forget the saved repository settings")

    uploadSubparser = subparsers.add_parser(
        'upload', help='Encrypt and upload files, then print their share links', parents=[globalsParent]
    )
    uploadSubparser.add_argument("files", metavar="FILE", nargs='+', help="Files to share")

    subparsers.add_parser('tasks', help='List upload tasks', parents=[globalsParent])
    subparsers.add_parser('retry', help='Retry pending and failed uploads', parents=[globalsParent])

    removeSubparser = subparsers.add_parser('remove', help='Remove an upload task', parents=[globalsParent])
    removeSubparser.add_argument("id", metavar="ID", nargs='?', help="Task id as shown by 'tasks'")
    removeSubparser.add_argument("--uploaded", action="store_true", help="Remove every uploaded task")

    downloadSubparser = subparsers.add_parser(
        'download', help='Download and decrypt a shared file', parents=[globalsParent]
    )
    downloadSubparser.add_argument("link", metavar="LINK", help="Share link")
    downloadSubparser.add_argument(
        "--output", "-o", metavar="DIR", default='.', help="Directory to save into (default: current directory)"
    )

    deleteSubparser = subparsers.add_parser(
        'delete', help='Delete a shared file from the repository', parents=[globalsParent]
    )
    deleteSubparser.add_argument("link", metavar="LINK", help="Share link")

    return parser, globalsParent
