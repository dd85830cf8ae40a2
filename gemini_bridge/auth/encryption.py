"""AES-256-CBC encryption for tokens and secrets at rest.

Output is byte-compatible with ``openssl enc -aes-256-cbc -pbkdf2 -salt -a -A``
so stored files can still be inspected with the openssl binary.
"""

from __future__ import annotations

import base64
import binascii
import getpass
import hashlib
import os
import socket
from pathlib import Path

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..errors import EncryptionError

SALT_MAGIC = b"Salted__"
SALT_SIZE = 8
PBKDF2_ITERATIONS = 10000
_MACHINE_ID_PATHS = (Path("/etc/machine-id"), Path("/var/lib/dbus/machine-id"))


def _derive_key_iv(password: str, salt: bytes) -> tuple[bytes, bytes]:
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=48, salt=salt, iterations=PBKDF2_ITERATIONS)
    material = kdf.derive(password.encode("utf-8"))
    return material[:32], material[32:]


def encrypt_bytes(data: bytes, password: str) -> bytes:
    if not password:
        raise EncryptionError("Encryption password must not be empty")
    salt = os.urandom(SALT_SIZE)
    key, iv = _derive_key_iv(password, salt)
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(data) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    return SALT_MAGIC + salt + encryptor.update(padded) + encryptor.finalize()


def decrypt_bytes(blob: bytes, password: str) -> bytes:
    if not blob.startswith(SALT_MAGIC) or len(blob) < len(SALT_MAGIC) + SALT_SIZE + 16:
        raise EncryptionError("Input is not salted AES-256-CBC data")
    salt = blob[len(SALT_MAGIC) : len(SALT_MAGIC) + SALT_SIZE]
    body = blob[len(SALT_MAGIC) + SALT_SIZE :]
    if len(body) % 16:
        raise EncryptionError("Ciphertext length is not a multiple of the block size")
    key, iv = _derive_key_iv(password, salt)
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(body) + decryptor.finalize()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    try:
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as exc:
        raise EncryptionError("Decryption failed (wrong password or corrupted data)") from exc


def encrypt_data(plaintext: str, password: str) -> str:
    """Encrypt text and return it base64 encoded on a single line."""
    return base64.b64encode(encrypt_bytes(plaintext.encode("utf-8"), password)).decode("ascii")


def decrypt_data(token: str, password: str) -> str:
    compact = "".join((token or "").split())
    try:
        blob = base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise EncryptionError("Encrypted payload is not valid base64") from exc
    raw = decrypt_bytes(blob, password)
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise EncryptionError("Decryption failed (wrong password or corrupted data)") from exc


def encrypt_file(src: str | Path, dst: str | Path, password: str) -> Path:
    source = Path(src)
    if not source.is_file():
        raise EncryptionError(f"Input file not found: {source}")
    target = Path(dst)
    write_secure(target, base64.b64encode(encrypt_bytes(source.read_bytes(), password)).decode("ascii") + "\n")
    return target


def decrypt_file(src: str | Path, dst: str | Path, password: str) -> Path:
    source = Path(src)
    if not source.is_file():
        raise EncryptionError(f"Encrypted file not found: {source}")
    compact = "".join(source.read_text(encoding="ascii", errors="replace").split())
    try:
        blob = base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise EncryptionError(f"{source} is not valid base64") from exc
    target = Path(dst)
    write_secure(target, decrypt_bytes(blob, password))
    return target


def write_secure(path: Path, content: str | bytes) -> None:
    """Write ``content`` to ``path`` readable only by the owner."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = content.encode("utf-8") if isinstance(content, str) else content
    fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as fout:
        fout.write(data)
    os.chmod(path, 0o600)


def get_machine_key() -> str:
    """Stable per-machine, per-user password used when none is configured."""
    machine_id = ""
    for candidate in _MACHINE_ID_PATHS:
        if candidate.is_file():
            machine_id = candidate.read_text(encoding="utf-8", errors="ignore").strip()
            if machine_id:
                break
    if not machine_id:
        machine_id = socket.gethostname()
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = str(os.getuid()) if hasattr(os, "getuid") else "user"
    return hashlib.sha256(f"{machine_id}:{user}:gemini-bridge".encode("utf-8")).hexdigest()


def resolve_password(explicit: str | None = None) -> str:
    return explicit or os.getenv("OAUTH_ENCRYPTION_PASSWORD") or get_machine_key()
