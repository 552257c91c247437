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

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from gitbox.Errors import AuthenticationFailure
from gitbox.Kernel import getLogger
from gitbox.crypto import CryptoBackend, Secret

logger = getLogger(__name__)


class CryptographyBackend(CryptoBackend):
    """AES-256-GCM backend on top of the cryptography library"""

    KEY_SIZE = 32
    NONCE_SIZE = 12 # 96-bit nonce for GCM

    def __init__(self):
        self.hashes = hashes
        self.AESGCM = AESGCM

    def getName(self):
        return "aesgcm"

    def createSecret(self):
        return Secret(key=self.AESGCM.generate_key(bit_length=self.KEY_SIZE * 8), nonce=os.urandom(self.NONCE_SIZE))

    def encrypt(self, plaintext, secret):
        """Encrypt with AES-GCM, returns ciphertext+tag"""
        if isinstance(plaintext, str):
            plaintext = plaintext.encode('utf-8')

        return self.AESGCM(secret.key).encrypt(secret.nonce, plaintext, None)

    def decrypt(self, ciphertext, secret):
        """Decrypt with AES-GCM, returns plaintext"""
        # Bad key or nonce sizes must look exactly like a failed tag.
        try:
            return self.AESGCM(secret.key).decrypt(secret.nonce, ciphertext, None)
        except (InvalidTag, ValueError) as e:
            logger.debug(f'AES-GCM decryption failed: {type(e).__name__}')
            raise AuthenticationFailure() from None

    def hash(self, data):
        """SHA-256 digest"""
        digest = self.hashes.Hash(self.hashes.SHA256())
        digest.update(data)
        return digest.finalize()
