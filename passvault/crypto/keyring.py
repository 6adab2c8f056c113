"""OpenPGP engine adapter: a directory of armored keys driven through pgpy."""

from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, NewType, Optional

from pgpy import PGPKey, PGPMessage, PGPSignature, PGPUID
from pgpy.constants import (
    CompressionAlgorithm,
    HashAlgorithm,
    KeyFlags,
    PubKeyAlgorithm,
    SymmetricKeyAlgorithm,
)

from passvault.errors import NoPrivateKeyFound
from passvault.log import get_logger

Fingerprint = NewType("Fingerprint", str)
PassphraseCallback = Callable[[PGPKey], str]

logger = get_logger(__name__)


def fingerprint_of(key: PGPKey) -> Fingerprint:
    return Fingerprint(str(key.fingerprint).replace(" ", "").upper())


def _key_ids(key: PGPKey) -> List[str]:
    return [fingerprint_of(key)[-16:]] + [kid.upper() for kid in key.subkeys]


def _describe(key: PGPKey) -> str:
    uid = key.userids[0] if key.userids else None
    if uid is None:
        return ""
    return f"{uid.name} <{uid.email}>" if uid.email else uid.name


@dataclass
class KeyInfo:
    fingerprint: Fingerprint
    user_id: str
    secret: bool
    protected: bool


class Keyring:
    """Keys stored one per file as `<FINGERPRINT>.asc` in `directory`.

    Secret keys protected by a passphrase are unlocked on demand through
    `passphrase`, which receives the key and returns its passphrase.
    """

    def __init__(
        self: "Keyring",
        directory: Path,
        passphrase: Optional[PassphraseCallback] = None,
    ) -> None:
        self.directory = directory
        self.passphrase = passphrase
        self._keys: Optional[Dict[Fingerprint, PGPKey]] = None

    @property
    def keys(self: "Keyring") -> Dict[Fingerprint, PGPKey]:
        if self._keys is None:
            self._keys = {}
            if self.directory.is_dir():
                for path in sorted(self.directory.glob("*.asc")):
                    key, _ = PGPKey.from_file(str(path))
                    self._keys[fingerprint_of(key)] = key
            logger.debug("Loaded %d keys from %s", len(self._keys), self.directory)
        return self._keys

    def _store(self: "Keyring", key: PGPKey) -> Fingerprint:
        fingerprint = fingerprint_of(key)
        existing = self.keys.get(fingerprint)
        if existing is not None and not existing.is_public and key.is_public:
            return fingerprint
        self.directory.mkdir(parents=True, exist_ok=True, mode=0o700)
        path = self.directory / f"{fingerprint}.asc"
        path.write_text(str(key))
        path.chmod(0o600)
        self.keys[fingerprint] = key
        return fingerprint

    def generate(
        self: "Keyring",
        name: str,
        email: Optional[str] = None,
        passphrase: Optional[str] = None,
        size: int = 3072,
    ) -> Fingerprint:
        key = PGPKey.new(PubKeyAlgorithm.RSAEncryptOrSign, size)
        key.add_uid(
            PGPUID.new(name, email=email or ""),
            usage={
                KeyFlags.Sign,
                KeyFlags.Certify,
                KeyFlags.EncryptCommunications,
                KeyFlags.EncryptStorage,
            },
            hashes=[HashAlgorithm.SHA512, HashAlgorithm.SHA256],
            ciphers=[SymmetricKeyAlgorithm.AES256],
            compression=[CompressionAlgorithm.ZLIB, CompressionAlgorithm.Uncompressed],
        )
        if passphrase:
            key.protect(passphrase, SymmetricKeyAlgorithm.AES256, HashAlgorithm.SHA256)
        del passphrase
        return self._store(key)

    def import_key(self: "Keyring", path: Path) -> Fingerprint:
        key, _ = PGPKey.from_file(str(path))
        return self._store(key)

    def list(self: "Keyring") -> List[KeyInfo]:
        return [
            KeyInfo(
                fingerprint=fingerprint,
                user_id=_describe(key),
                secret=not key.is_public,
                protected=bool(not key.is_public and key.is_protected),
            )
            for fingerprint, key in sorted(self.keys.items())
        ]

    def find_key(self: "Keyring", identifier: str) -> Optional[PGPKey]:
        ident = identifier.strip()
        if ident.lower().startswith("0x"):
            ident = ident[2:]
        compact = ident.replace(" ", "").upper()
        for fingerprint, key in self.keys.items():
            if len(compact) >= 8 and fingerprint.endswith(compact):
                return key
            if compact in _key_ids(key):
                return key
        for key in self.keys.values():
            if ident and any(
                ident.lower() in f"{uid.name} <{uid.email}>".lower()
                for uid in key.userids
            ):
                return key
        return None

    def find_secret_key(self: "Keyring", identifier: str) -> Optional[PGPKey]:
        key = self.find_key(identifier)
        if key is None or key.is_public:
            return None
        return key

    def secret_keys(self: "Keyring", identifiers: Iterable[str]) -> List[PGPKey]:
        """Resolve `identifiers`, skipping those without a usable secret key."""
        found: Dict[Fingerprint, PGPKey] = {}
        for identifier in identifiers:
            key = self.find_secret_key(identifier)
            if key is None:
                logger.warning("Skipping key '%s': no secret key available", identifier)
                continue
            found.setdefault(fingerprint_of(key), key)
        return list(found.values())

    @contextmanager
    def unlocked(self: "Keyring", key: PGPKey) -> Iterator[PGPKey]:
        if not key.is_protected:
            yield key
            return
        if self.passphrase is None:
            raise NoPrivateKeyFound()
        passphrase = self.passphrase(key)
        with key.unlock(passphrase) as unlocked_key:
            del passphrase
            yield unlocked_key

    def encrypt(self: "Keyring", plaintext: bytes, keys: List[PGPKey]) -> bytes:
        assert keys, "At least one recipient is required."
        msg = PGPMessage.new(bytes(plaintext))
        cipher = SymmetricKeyAlgorithm.AES256
        session_key = cipher.gen_key()
        for key in keys:
            public = key if key.is_public else key.pubkey
            msg = public.encrypt(msg, cipher=cipher, sessionkey=session_key)
        del session_key
        return bytes(msg)

    def decrypt(self: "Keyring", ciphertext: bytes) -> bytes:
        msg = PGPMessage.from_blob(ciphertext)
        encrypters = {kid.upper() for kid in msg.encrypters}
        for key in self.keys.values():
            if key.is_public or not encrypters.intersection(_key_ids(key)):
                continue
            with self.unlocked(key) as unlocked_key:
                content = unlocked_key.decrypt(msg).message
            if isinstance(content, str):
                return content.encode()
            return bytes(content)
        raise NoPrivateKeyFound()

    def sign(self: "Keyring", data: bytes, keys: List[PGPKey]) -> PGPSignature:
        """Detached signature of `data` by the first of `keys`."""
        assert keys, "At least one signing key is required."
        with self.unlocked(keys[0]) as unlocked_key:
            return unlocked_key.sign(bytes(data))

    def verify(
        self: "Keyring", data: bytes, signature: PGPSignature, keys: List[PGPKey]
    ) -> bool:
        signer = str(signature.signer).upper()
        for key in keys:
            if signer in _key_ids(key):
                public = key if key.is_public else key.pubkey
                return bool(public.verify(bytes(data), signature))
        return False
