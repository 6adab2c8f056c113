"""Settings read once from the environment and handed to every component."""

import logging
import os
import string
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Tuple

from passvault.errors import InvalidConfiguration

DIGITS = string.digits
ALPHA = string.ascii_lowercase + string.ascii_uppercase
SPECIAL = string.punctuation


def _split_keys(raw: str) -> Tuple[str, ...]:
    return tuple(key for key in raw.split(" ") if key)


def _as_int(name: str, raw: str, base: int = 10) -> int:
    try:
        return int(raw, base)
    except ValueError:
        raise InvalidConfiguration(name, raw) from None


@dataclass(frozen=True)
class Config:
    store_dir: Path
    home: str
    keyring_dir: Path
    extra_keys: Tuple[str, ...] = ()
    signing_keys: Tuple[str, ...] = ()
    umask: int = 0o077
    clip_time: int = 45
    generated_length: int = 24
    character_set: str = DIGITS + ALPHA + SPECIAL
    character_set_no_symbols: str = DIGITS + ALPHA
    editor: str = "/usr/bin/vi"
    git_binary: str = "git"
    log_level: int = field(default=logging.WARNING)

    @property
    def gpg_id_file(self: "Config") -> Path:
        return self.store_dir / ".gpg-id"

    @property
    def file_mode(self: "Config") -> int:
        return 0o666 & ~self.umask

    @property
    def dir_mode(self: "Config") -> int:
        return 0o777 & ~self.umask

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        env = os.environ if environ is None else environ
        home = env.get("HOME") or str(Path.home())
        store_dir = Path(env.get("PASSWORD_STORE_DIR") or f"{home}/.password-store")
        keyring_dir = Path(
            env.get("PASSVAULT_KEYRING") or f"{home}/.config/passvault/keyring"
        )
        editor = env.get("EDITOR") or env.get("VISUAL") or "/usr/bin/vi"
        level_name = env.get("PASSVAULT_LOG_LEVEL", "WARNING").upper()
        log_level = logging.getLevelName(level_name)
        if not isinstance(log_level, int):
            raise InvalidConfiguration("PASSVAULT_LOG_LEVEL", level_name)
        return cls(
            store_dir=Path(os.path.expanduser(str(store_dir))),
            home=home,
            keyring_dir=keyring_dir,
            extra_keys=_split_keys(env.get("PASSWORD_STORE_KEY", "")),
            signing_keys=_split_keys(env.get("PASSWORD_STORE_SIGNING_KEY", "")),
            umask=_as_int(
                "PASSWORD_STORE_UMASK", env.get("PASSWORD_STORE_UMASK", "077"), 8
            ),
            clip_time=_as_int(
                "PASSWORD_STORE_CLIP_TIME", env.get("PASSWORD_STORE_CLIP_TIME", "45")
            ),
            generated_length=_as_int(
                "PASSWORD_STORE_GENERATED_LENGTH",
                env.get("PASSWORD_STORE_GENERATED_LENGTH", "24"),
            ),
            character_set=env.get("PASSWORD_STORE_CHARACTER_SET")
            or DIGITS + ALPHA + SPECIAL,
            character_set_no_symbols=env.get("PASSWORD_STORE_CHARACTER_SET_NO_SYMBOLS")
            or DIGITS + ALPHA,
            editor=editor,
            git_binary=env.get("PASSVAULT_GIT_BINARY") or "git",
            log_level=log_level,
        )
