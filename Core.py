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

import getpass
import os
import sys

import requests

from tqdm import tqdm

from gitbox.CLI import configureCLIParser, configureLogging, loadEnvFile, showVersion
from gitbox.Cache import BinaryCache
from gitbox.Errors import GitboxError
from gitbox.GitHub import GitHubAccessChecker, GitHubStore
from gitbox.Kernel import getLogger
from gitbox.Settings import UPLOAD_TASKS_FILENAME, SettingsGetter
from gitbox.Transport import TransportProtocol, saveSharedFile
from gitbox.Uploads import UploadTaskQueue, UploadTaskStatus
from gitbox.Utils import flushPrint, formatSize, getEnv, sendException
from gitbox.crypto import CryptoInterface

logger = getLogger(__name__)


def setupSettings(globalArgs):
    # Load .env file before anything reads the environment
    loadEnvFile()

    allowedHosts = getEnv('GITBOX_ALLOWED_HOSTS', None)

    return SettingsGetter(
        cryptoBackend=globalArgs.cryptoBackend or getEnv('GITBOX_CRYPTO_BACKEND', None),
        appUrl=getEnv('GITBOX_APP_URL', None),
        selfHostname=getEnv('GITBOX_SELF_HOSTNAME', None),
        allowedHostnames=[h.strip() for h in allowedHosts.split(',') if h.strip()] if allowedHosts else None,
    )


class Application:
    """Wires the crypto backend, GitHub and the upload queue for one CLI run"""

    def __init__(self, settingsGetter: SettingsGetter, store=None, accessChecker=None):
        self.settingsGetter = settingsGetter
        self.crypto = CryptoInterface(settingsGetter.cryptoBackend)
        self.store = store or GitHubStore()
        self.accessChecker = accessChecker or GitHubAccessChecker(session=self.store.session)
        self.transport = TransportProtocol(
            self.crypto,
            self.store,
            self.accessChecker,
            settingsGetter.appUrl,
            settingsGetter.selfHostname,
            settingsGetter.allowedHostnames,
        )
        self._queue = None

    @property
    def queue(self) -> UploadTaskQueue:
        if self._queue is None:
            self._queue = UploadTaskQueue(
                self.transport,
                BinaryCache(self.settingsGetter.getCacheDir()),
                self.settingsGetter.loadRepositorySettings,
                self.settingsGetter.getStoragePath(UPLOAD_TASKS_FILENAME),
            )
        return self._queue

    def close(self):
        self.store.close()


def requireRepositorySettings(app):
    settings = app.settingsGetter.loadRepositorySettings()
    if not settings.valid:
        flushPrint("Error: No verified repository. Run 'gitbox configure OWNER/NAME' first.")
        return None
    return settings


def drainWithProgress(queue: UploadTaskQueue, tasks):
    """
    Upload until every task settles, printing share links as they become available.

    Returns:
        int: 0 if all tasks were uploaded, 1 otherwise
    """
    totalSize = sum(task.file.size for task in tasks if queue.isEligible(task))

    with tqdm(total=totalSize, desc='Uploading', unit='B', unit_scale=True, leave=False) as progress:

        def onTaskChanged(task, **kwargs):
            settled = task.status == UploadTaskStatus.UPLOADED or (
                task.status == UploadTaskStatus.FAILED and task.retryCount > queue.maxRetries
            )
            if settled and task in tasks:
                progress.update(task.file.size)

        queue.taskChanged.connect(onTaskChanged)
        try:
            queue.drainUntilSettled()
        finally:
            queue.taskChanged.disconnect(onTaskChanged)

    exitCode = 0
    for task in tasks:
        if task.status == UploadTaskStatus.UPLOADED:
            flushPrint(f'{task.file.name}: {task.downloadLink}')
        else:
            flushPrint(f'{task.file.name}: failed after {task.retryCount} attempts ({task.file.id})')
            exitCode = 1

    if exitCode and queue.lastError is not None:
        flushPrint(f'Last error: {queue.lastError}')

    return exitCode


def processConfigure(app, args):
    owner, name = args.repository
    accessToken = args.token or getEnv('GITBOX_TOKEN', None) or getpass.getpass('Access token: ')

    settings = app.settingsGetter.verifyRepositorySettings(owner, name, accessToken, app.accessChecker)
    flushPrint(f'Uploads will be committed to {settings.repository.fullName} ({settings.repository.branch})')
    return 0


def processSettings(app, args):
    if args.clear:
        app.settingsGetter.clearRepositorySettings()
        flushPrint('Repository settings removed.')
        return 0

    settings = app.settingsGetter.loadRepositorySettings()
    if not settings.repository.owner:
        flushPrint("No repository configured. Run 'gitbox configure OWNER/NAME'.")
        return 0

    token = settings.accessToken
    maskedToken = f'{token[:4]}...{token[-4:]}' if len(token) > 12 else '***'

    flushPrint(f'Repository: {settings.repository.fullName}')
    flushPrint(f'Branch:     {settings.repository.branch}')
    flushPrint(f'Token:      {maskedToken}')
    flushPrint(f'Verified:   {"yes" if settings.valid else "no"}')
    return 0


def processUpload(app, args):
    if requireRepositorySettings(app) is None:
        return 1

    tasks = []
    for path in args.files:
        if not os.path.isfile(path):
            flushPrint(f'Skipping {path}: not a file')
            continue
        tasks.append(app.queue.enqueueFile(path))

    if not tasks:
        return 1

    return drainWithProgress(app.queue, tasks)


def processTasks(app, args):
    tasks = list(app.queue.tasks.values())
    if not tasks:
        flushPrint('No upload tasks.')
        return 0

    for task in tasks:
        flushPrint(
            f'{task.file.id}  {task.status.value:<8}  {formatSize(task.file.size):>10}  '
            f'retries={task.retryCount}  {task.file.name}'
        )
        if task.downloadLink:
            flushPrint(f'    {task.downloadLink}')
    return 0


def processRetry(app, args):
    if requireRepositorySettings(app) is None:
        return 1

    tasks = [task for task in app.queue.pendingTasks() if app.queue.isEligible(task)]
    if not tasks:
        flushPrint('Nothing to retry.')
        return 0

    return drainWithProgress(app.queue, tasks)


def processRemove(app, args):
    if args.uploaded:
        removed = app.queue.clearUploaded()
        flushPrint(f'Removed {len(removed)} uploaded tasks.')
        return 0

    if not args.id:
        flushPrint('Error: Provide a task ID or --uploaded')
        return 1

    task = app.queue.remove(args.id)
    if task is None:
        flushPrint(f'Error: No upload task {args.id}')
        return 1

    flushPrint(f'Removed {task.file.name}')
    return 0


def processDownload(app, args):
    sharedFile = app.transport.resolveShareLink(args.link)
    outputPath = saveSharedFile(sharedFile, args.output)

    logger.debug(f'File downloaded successfully: {outputPath}')
    flushPrint(f'Downloaded: {outputPath} ({formatSize(sharedFile.size)})')
    return 0


def processDelete(app, args):
    settings = requireRepositorySettings(app)
    if settings is None:
        return 1

    app.transport.deleteSharedFile(args.link, settings.accessToken)
    flushPrint('Deleted.')
    return 0


COMMANDS = {
    'configure': processConfigure,
    'settings': processSettings,
    'upload': processUpload,
    'tasks': processTasks,
    'retry': processRetry,
    'remove': processRemove,
    'download': processDownload,
    'delete': processDelete,
}


def runCLIMain(argv=None):
    parser, globalsParent = configureCLIParser()

    argv = sys.argv[1:] if argv is None else argv

    if len(argv) == 0:
        parser.print_help()
        return 0

    # Global options may appear before or after the command.
    globalArgs, rest = globalsParent.parse_known_args(argv)
    configureLogging(globalArgs.logLevel)

    settingsGetter = setupSettings(globalArgs)

    if globalArgs.version:
        showVersion()
        return 0

    if not rest:
        parser.print_help()
        return 0

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 0

    app = Application(settingsGetter)
    try:
        return COMMANDS[args.command](app, args)
    except GitboxError as e:
        sendException(logger, e, errorPrefix=f'{args.command.capitalize()} failed')
        return 1
    finally:
        app.close()


def main():
    try:
        return runCLIMain()
    except KeyboardInterrupt:
        flushPrint('\nExiting on user request (Ctrl+C)...')
        return 0
    except (requests.exceptions.ConnectionError, ConnectionError):
        sendException(logger, 'Failed to connect server')
        return 1
    except PermissionError as e:
        flushPrint(f'Error: {e}')
        return 1
    except Exception as e:
        sendException(logger, e)
        return 1


if __name__ == '__main__':
    sys.exit(main() or 0)
