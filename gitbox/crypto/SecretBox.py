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

import nacl.exceptions
import nacl.hash
import nacl.utils

from nacl.encoding import RawEncoder
from nacl.secret import SecretBox

from gitbox.Errors import AuthenticationFailure
from gitbox.Kernel import getLogger
from gitbox.crypto import CryptoBackend, Secret

logger = getLogger(__name__)


class SecretBoxBackend(CryptoBackend):
    """
    XSalsa20-Poly1305 secretbox backend on top of PyNaCl.

    Output layout matches libsodium's crypto_secretbox_easy (16-byte MAC followed by the
    encrypted body, no nonce prefix) and hash() matches crypto_generichash with a 32-byte
    digest, so envelopes are byte compatible with libsodium based clients.
    """

    KEY_SIZE = SecretBox.KEY_SIZE
    NONCE_SIZE = SecretBox.NONCE_SIZE
    HASH_SIZE = 32

    def getName(self):
        return "secretbox"

    def createSecret(self):
        return Secret(key=nacl.utils.random(self.KEY_SIZE), nonce=nacl.utils.random(self.NONCE_SIZE))

    def encrypt(self, plaintext, secret):
        if isinstance(plaintext, str):
            plaintext = plaintext.encode('utf-8')

        # EncryptedMessage.ciphertext drops the nonce prefix PyNaCl adds.
        return SecretBox(secret.key).encrypt(plaintext, secret.nonce).ciphertext

    def decrypt(self, ciphertext, secret):
        # nacl.exceptions.ValueError/TypeError cover bad key and nonce sizes.
        try:
            return SecretBox(secret.key).decrypt(ciphertext, secret.nonce)
        except (nacl.exceptions.CryptoError, ValueError, TypeError) as e:
            logger.debug(f'secretbox decryption failed: {type(e).__name__}')
            raise AuthenticationFailure() from None

    def hash(self, data):
        """BLAKE2b-256 digest"""
        return nacl.hash.blake2b(data, digest_size=self.HASH_SIZE, encoder=RawEncoder)
