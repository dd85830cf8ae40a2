"""Encrypted on-disk storage for OAuth tokens."""

from __future__ import annotations

import json
import os
import time
from pathlib import Path
from typing import Optional

from .. import paths
from ..errors import EncryptionError
from ..schemas.tokens import TokenInfo
from .encryption import decrypt_data, encrypt_data, resolve_password, write_secure

ACCESS_TOKEN_FILE = "access_token.enc"
REFRESH_TOKEN_FILE = "refresh_token.enc"
TOKEN_INFO_FILE = "token_info.json"


class TokenStore:
    """Access/refresh tokens are encrypted; ``token_info.json`` stays readable."""

    def __init__(self, token_dir: str | Path | None = None, password: Optional[str] = None) -> None:
        self.token_dir = Path(token_dir) if token_dir else paths.token_dir()
        self._password = password

    @property
    def password(self) -> str:
        return resolve_password(self._password)

    def _ensure_dir(self) -> None:
        self.token_dir.mkdir(parents=True, exist_ok=True)
        os.chmod(self.token_dir, 0o700)

    def store_tokens(
        self,
        access_token: str,
        refresh_token: Optional[str] = None,
        expires_in: int = 3600,
        scope: Optional[str] = None,
        token_type: str = "Bearer",
    ) -> TokenInfo:
        self._ensure_dir()
        password = self.password
        write_secure(self.token_dir / ACCESS_TOKEN_FILE, encrypt_data(access_token, password))
        if refresh_token:
            write_secure(self.token_dir / REFRESH_TOKEN_FILE, encrypt_data(refresh_token, password))
        info = TokenInfo(expires_at=int(time.time()) + int(expires_in), scope=scope, token_type=token_type or "Bearer")
        write_secure(self.token_dir / TOKEN_INFO_FILE, info.model_dump_json(indent=2))
        return info

    def _load(self, name: str) -> Optional[str]:
        path = self.token_dir / name
        if not path.is_file():
            return None
        return decrypt_data(path.read_text(encoding="ascii"), self.password)

    def load_access_token(self) -> Optional[str]:
        return self._load(ACCESS_TOKEN_FILE)

    def load_refresh_token(self) -> Optional[str]:
        return self._load(REFRESH_TOKEN_FILE)

    def token_info(self) -> Optional[TokenInfo]:
        path = self.token_dir / TOKEN_INFO_FILE
        if not path.is_file():
            return None
        try:
            return TokenInfo.model_validate(json.loads(path.read_text(encoding="utf-8")))
        except ValueError as exc:
            raise EncryptionError(f"Corrupted token metadata: {path}") from exc

    def has_tokens(self) -> bool:
        return (self.token_dir / ACCESS_TOKEN_FILE).is_file()

    def is_token_expired(self, buffer: int = 300) -> bool:
        info = self.token_info()
        if info is None:
            return True
        return time.time() + buffer >= info.expires_at

    def clear(self) -> None:
        for name in (ACCESS_TOKEN_FILE, REFRESH_TOKEN_FILE, TOKEN_INFO_FILE):
            (self.token_dir / name).unlink(missing_ok=True)
