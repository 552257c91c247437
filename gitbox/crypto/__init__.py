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

from abc import ABC, abstractmethod
from dataclasses import dataclass

from gitbox.Kernel import classForName, getLogger

logger = getLogger(__name__)

SECRETBOX = 'secretbox'
AESGCM = 'aesgcm'

BACKENDS = {
    SECRETBOX: 'gitbox.crypto.SecretBox.SecretBoxBackend',
    AESGCM: 'gitbox.crypto.Cryptography.CryptographyBackend',
}

DEFAULT_BACKEND = SECRETBOX


@dataclass(frozen=True)
class Secret:
    """Key and nonce of one shared file. Never leaves the client except inside a share link."""
    key: bytes
    nonce: bytes

    def __repr__(self):
        return f'Secret(key=<{len(self.key)} bytes>, nonce=<{len(self.nonce)} bytes>)'


class CryptoBackend(ABC):
    """Abstract base class for authenticated symmetric encryption backends"""

    KEY_SIZE = 32
    NONCE_SIZE = 0

    @abstractmethod
    def getName(self):
        """Get backend name"""
        pass

    @abstractmethod
    def createSecret(self) -> Secret:
        """Generate a fresh random key and nonce sized for the primitive"""
        pass

    @abstractmethod
    def encrypt(self, plaintext: bytes, secret: Secret) -> bytes:
        """Encrypt and authenticate plaintext, returns ciphertext carrying its tag"""
        pass

    @abstractmethod
    def decrypt(self, ciphertext: bytes, secret: Secret) -> bytes:
        """Verify and decrypt ciphertext, raises AuthenticationFailure on any tag failure"""
        pass

    @abstractmethod
    def hash(self, data: bytes) -> bytes:
        """256-bit digest of data"""
        pass


class CryptoInterface:
    """Crypto interface bound to exactly one backend for its lifetime"""

    def __init__(self, preferredBackend=None):
        self.backend = self._initializeBackend(preferredBackend or DEFAULT_BACKEND)

    def _initializeBackend(self, preferredBackend):
        backendName = preferredBackend.lower()
        if backendName not in BACKENDS:
            raise ValueError(f"Unknown crypto backend '{preferredBackend}', expected one of {', '.join(BACKENDS)}")

        try:
            backendClass = classForName(BACKENDS[backendName])
        except ImportError as e:
            raise RuntimeError(f"Crypto backend '{backendName}' is not available: {e}") from e

        logger.debug(f'[CRYPTO] Using backend {backendName}')
        return backendClass()

    def getBackendName(self):
        return self.backend.getName()

    def __getattr__(self, name):
        # Delegate any undefined method to backend
        return getattr(self.backend, name)
