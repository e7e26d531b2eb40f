"""Room codes and display names.

The id used as the registry key is never shown to players directly. The
lobby shows a display name derived from the id, and the shareable code is
the id encrypted with a static passphrase. The format is the OpenSSL
``Salted__`` layout (AES-256-CBC, MD5 EVP_BytesToKey) that CryptoJS emits
for passphrase encryption, so codes built in the browser decrypt here too.

This keeps ids from being guessed casually. It is not meant to resist a
determined attacker: the passphrase ships with the frontend.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import os
import re

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..game.errors import RoomCodeError


CAPITAL_CITIES = [
    "Tokyo", "Delhi", "Beijing", "Moscow", "Istanbul", "Cairo", "London", "Paris",
    "Berlin", "Madrid", "Rome", "Amsterdam", "Vienna", "Athens", "Stockholm",
    "Oslo", "Copenhagen", "Helsinki", "Dublin", "Lisbon", "Warsaw", "Prague",
    "Budapest", "Bucharest", "Sofia", "Belgrade", "Zagreb", "Bratislava", "Ljubljana",
    "Riga", "Tallinn", "Vilnius", "Kiev", "Minsk", "Baku", "Tbilisi", "Yerevan",
    "Ankara", "Beirut", "Damascus", "Amman", "Jerusalem", "Riyadh", "Doha", "Manama",
    "Kuwait", "Muscat", "Abu Dhabi", "Dubai", "Islamabad", "Dhaka", "Kathmandu",
]

ROOM_NAME_SUFFIX = "Capy Room"

_SALT_HEADER = b"Salted__"
_SALT_LEN = 8
_KEY_LEN = 32
_BLOCK_LEN = 16
_HEX_PREFIX = re.compile(r"[0-9a-fA-F]+")


def lookup_display_name(room_id: str) -> str:
    """Map a room id to a readable name. Pure: the same id always gives the same name."""
    head = (room_id or "").split("-")[0].strip()
    match = _HEX_PREFIX.match(head)
    value = int(match.group(0), 16) if match else 0
    city = CAPITAL_CITIES[value % len(CAPITAL_CITIES)]
    return f"{city} {ROOM_NAME_SUFFIX}"


def _derive_key_iv(passphrase: bytes, salt: bytes) -> tuple[bytes, bytes]:
    derived = b""
    block = b""
    while len(derived) < _KEY_LEN + _BLOCK_LEN:
        block = hashlib.md5(block + passphrase + salt).digest()
        derived += block
    return derived[:_KEY_LEN], derived[_KEY_LEN:_KEY_LEN + _BLOCK_LEN]


class RoomCodec:
    def __init__(self, secret: str) -> None:
        self._passphrase = secret.encode("utf-8")

    def encrypt_id(self, room_id: str) -> str:
        salt = os.urandom(_SALT_LEN)
        key, iv = _derive_key_iv(self._passphrase, salt)

        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        data = padder.update(room_id.encode("utf-8")) + padder.finalize()

        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(data) + encryptor.finalize()
        return base64.b64encode(_SALT_HEADER + salt + ciphertext).decode("ascii")

    def decrypt_id(self, code: str) -> str:
        try:
            raw = base64.b64decode((code or "").strip(), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise RoomCodeError() from exc

        header_len = len(_SALT_HEADER) + _SALT_LEN
        body = raw[header_len:]
        if not raw.startswith(_SALT_HEADER) or not body or len(body) % _BLOCK_LEN:
            raise RoomCodeError()

        key, iv = _derive_key_iv(self._passphrase, raw[len(_SALT_HEADER):header_len])
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        data = decryptor.update(body) + decryptor.finalize()

        try:
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            room_id = (unpadder.update(data) + unpadder.finalize()).decode("utf-8")
        except ValueError as exc:
            raise RoomCodeError() from exc

        if not room_id:
            raise RoomCodeError()
        return room_id
