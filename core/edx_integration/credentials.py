"""
Credential helpers for Open edX accounts.

Students get an auto-generated password on the learning platform. The
password is stored encrypted with AES-256-CBC so it can later be replayed
for single sign-on. The key is the SHA-256 digest of ``EDX_PASSWORD_SECRET``
and the stored form is ``<iv hex>:<ciphertext hex>``.
"""

import hashlib
import os
import random
import re
import secrets
import string
from typing import Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from django.conf import settings

from .results import EdxCredentials

IV_LENGTH = 16
PASSWORD_LENGTH = 16
PASSWORD_ALPHABET = string.ascii_letters + string.digits + "!@#$%"
USERNAME_MAX_LENGTH = 25
USERNAME_SUFFIX_LENGTH = 4
BASE36_ALPHABET = string.digits + string.ascii_lowercase

_username_invalid_chars = re.compile(r"[^a-z0-9_-]")


def _encryption_key(secret: Optional[str] = None) -> bytes:
    secret = secret if secret is not None else settings.EDX_PASSWORD_SECRET
    return hashlib.sha256(secret.encode("utf-8")).digest()


def encrypt_password(plain: str, secret: Optional[str] = None) -> str:
    """Encrypt ``plain`` with a fresh random IV."""
    iv = os.urandom(IV_LENGTH)
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plain.encode("utf-8")) + padder.finalize()

    encryptor = Cipher(algorithms.AES(_encryption_key(secret)), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()
    return f"{iv.hex()}:{ciphertext.hex()}"


def decrypt_password(encrypted: str, secret: Optional[str] = None) -> str:
    """
    Decrypt a value produced by :func:`encrypt_password`.

    Raises:
        ValueError: If the value is malformed or the key does not match
    """
    iv_hex, sep, ciphertext_hex = encrypted.partition(":")
    if not sep or not iv_hex or not ciphertext_hex:
        raise ValueError("Encrypted password must have the form '<iv>:<ciphertext>'")

    iv = bytes.fromhex(iv_hex)
    ciphertext = bytes.fromhex(ciphertext_hex)
    decryptor = Cipher(algorithms.AES(_encryption_key(secret)), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()

    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    return (unpadder.update(padded) + unpadder.finalize()).decode("utf-8")


def generate_password(length: int = PASSWORD_LENGTH) -> str:
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def create_credentials(first_name: str = "", last_name: str = "") -> EdxCredentials:
    """Generate a platform password for a first-time registration."""
    password = generate_password()
    return EdxCredentials(password=password, encrypted_password=encrypt_password(password))


def generate_username(email: str, first_name: str = "", last_name: str = "") -> str:
    """
    Derive a platform username such as ``ahmed_ali_x7k2``.

    Name parts are lowercased and filtered to ``[a-z0-9_-]``; when nothing
    usable remains the e-mail local part is used instead. A random base36
    suffix keeps usernames for identical names apart.
    """
    first = _username_invalid_chars.sub("", (first_name or "").lower())
    last = _username_invalid_chars.sub("", (last_name or "").lower())

    if first and last:
        base = f"{first}_{last}"
    else:
        base = _username_invalid_chars.sub("", email.split("@")[0].lower())
    base = (base or "user")[:USERNAME_MAX_LENGTH]

    suffix = "".join(
        random.choice(BASE36_ALPHABET) for _ in range(USERNAME_SUFFIX_LENGTH)
    )
    return f"{base}_{suffix}"
