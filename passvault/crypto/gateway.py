"""Encryption of store entries under the key set of their domain."""

import enum
import os
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence

from pgpy import PGPKey, PGPSignature

from passvault.config import Config
from passvault.crypto.keyring import Keyring
from passvault.errors import (
    BadSignature,
    EntryNotText,
    MissingSignature,
    NoSigningKeyFound,
)
from passvault.log import get_logger
from passvault.paths import closest_gpg_id, create_dirs_to_file, signature_path

logger = get_logger(__name__)


class EditMode(enum.Enum):
    CLOBBER = "clobber"
    APPEND = "append"


def write_atomic(path: Path, content: bytes, mode: int) -> None:
    """Replace `path` with `content` in a single rename."""
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=".", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as tmp_file:
            tmp_file.write(content)
        os.chmod(tmp, mode)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def read_gpg_ids(gpg_id: Path) -> List[str]:
    return [line.strip() for line in gpg_id.read_text().splitlines() if line.strip()]


class CryptoGateway:
    def __init__(self: "CryptoGateway", config: Config, keyring: Keyring) -> None:
        self.config = config
        self.keyring = keyring

    @property
    def signing(self: "CryptoGateway") -> bool:
        return bool(self.config.signing_keys)

    def signing_keys(self: "CryptoGateway") -> List[PGPKey]:
        keys = self.keyring.secret_keys(self.config.signing_keys)
        if not keys:
            raise NoSigningKeyFound()
        return keys

    def sign_file(self: "CryptoGateway", path: Path) -> None:
        signature = self.keyring.sign(path.read_bytes(), self.signing_keys())
        write_atomic(signature_path(path), bytes(signature), self.config.file_mode)

    def verify_file(self: "CryptoGateway", path: Path) -> None:
        sig_path = signature_path(path)
        if not sig_path.is_file():
            raise MissingSignature(str(path))
        signature = PGPSignature.from_blob(sig_path.read_bytes())
        if not self.keyring.verify(path.read_bytes(), signature, self.signing_keys()):
            raise BadSignature(str(path))

    def recipients(self: "CryptoGateway", path: Path) -> List[str]:
        """Key identifiers of the domain containing `path`."""
        gpg_id = closest_gpg_id(self.config.store_dir, path)
        if self.signing:
            self.verify_file(gpg_id)
        ids = read_gpg_ids(gpg_id) if gpg_id.is_file() else []
        logger.debug("Keys for %s from %s: %s", path, gpg_id, ids)
        return ids + list(self.config.extra_keys)

    def encryption_keys(
        self: "CryptoGateway", path: Path, keys: Optional[Sequence[str]] = None
    ) -> List[PGPKey]:
        identifiers = list(keys) if keys is not None else self.recipients(path)
        return self.keyring.secret_keys(identifiers)

    def decrypt(self: "CryptoGateway", path: Path) -> bytes:
        if self.signing:
            self.verify_file(path)
        return self.keyring.decrypt(path.read_bytes())

    def decrypt_lines(self: "CryptoGateway", path: Path) -> List[str]:
        try:
            return self.decrypt(path).decode().splitlines()
        except UnicodeDecodeError:
            raise EntryNotText(str(path)) from None

    def encrypt(
        self: "CryptoGateway",
        plaintext: bytes,
        path: Path,
        mode: EditMode = EditMode.CLOBBER,
        keys: Optional[Sequence[str]] = None,
    ) -> None:
        recipients = self.encryption_keys(path, keys)
        if not recipients:
            raise NoSigningKeyFound()
        create_dirs_to_file(path, self.config.store_dir, self.config.dir_mode)
        if mode is EditMode.APPEND and path.exists():
            plaintext = self.decrypt(path) + b"\n" + plaintext
        ciphertext = self.keyring.encrypt(plaintext, recipients)
        write_atomic(path, ciphertext, self.config.file_mode)
        logger.debug("Encrypted %s for %d keys", path, len(recipients))
        if self.signing:
            self.sign_file(path)
