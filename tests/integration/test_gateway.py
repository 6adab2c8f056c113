import dataclasses
import stat

import pytest

from passvault.crypto.gateway import CryptoGateway, EditMode, read_gpg_ids, write_atomic
from passvault.errors import (
    BadSignature,
    MissingSignature,
    NoPrivateKeyFound,
    NoSigningKeyFound,
)


@pytest.fixture
def gateway(config, keyring, store_dir, fingerprints):
    (store_dir / ".gpg-id").write_text(fingerprints["alice"] + "\n")
    return CryptoGateway(config, keyring)


@pytest.fixture
def signing_gateway(config, keyring, store_dir, fingerprints):
    config = dataclasses.replace(config, signing_keys=(fingerprints["bob"],))
    gateway = CryptoGateway(config, keyring)
    (store_dir / ".gpg-id").write_text(fingerprints["alice"] + "\n")
    gateway.sign_file(store_dir / ".gpg-id")
    return gateway


def test_round_trip(gateway, store_dir):
    path = store_dir / "Internet/site.gpg"
    gateway.encrypt(b"p4ss\nlogin: me", path)
    assert gateway.decrypt(path) == b"p4ss\nlogin: me"
    assert gateway.decrypt_lines(path) == ["p4ss", "login: me"]


def test_append(gateway, store_dir):
    path = store_dir / "entry.gpg"
    gateway.encrypt(b"A", path)
    gateway.encrypt(b"B", path, EditMode.APPEND)
    assert gateway.decrypt(path) == b"A\nB"


def test_permissions_follow_umask(gateway, store_dir):
    path = store_dir / "dir/entry.gpg"
    gateway.encrypt(b"x", path)
    assert stat.S_IMODE(path.stat().st_mode) == 0o600
    assert stat.S_IMODE((store_dir / "dir").stat().st_mode) == 0o700


def test_domain_keys_decide_recipients(gateway, store_dir, fingerprints, make_keyring):
    (store_dir / "shared").mkdir()
    (store_dir / "shared/.gpg-id").write_text(
        f"{fingerprints['alice']}\n{fingerprints['bob']}\n"
    )
    gateway.encrypt(b"both", store_dir / "shared/x.gpg")
    gateway.encrypt(b"alice", store_dir / "mine.gpg")
    bob = make_keyring("bob")
    assert bob.decrypt((store_dir / "shared/x.gpg").read_bytes()) == b"both"
    with pytest.raises(NoPrivateKeyFound):
        bob.decrypt((store_dir / "mine.gpg").read_bytes())


def test_extra_keys_are_added(config, keyring, store_dir, fingerprints, make_keyring):
    (store_dir / ".gpg-id").write_text(fingerprints["alice"] + "\n")
    config = dataclasses.replace(config, extra_keys=("bob@example.com",))
    CryptoGateway(config, keyring).encrypt(b"extra", store_dir / "x.gpg")
    assert make_keyring("bob").decrypt((store_dir / "x.gpg").read_bytes()) == b"extra"


def test_unusable_keys_are_skipped(gateway, store_dir, fingerprints):
    (store_dir / ".gpg-id").write_text("nobody@example.com\n" + fingerprints["alice"])
    gateway.encrypt(b"ok", store_dir / "x.gpg")
    assert gateway.decrypt(store_dir / "x.gpg") == b"ok"


def test_no_usable_key(gateway, store_dir):
    (store_dir / ".gpg-id").write_text("nobody@example.com\n")
    with pytest.raises(NoSigningKeyFound):
        gateway.encrypt(b"lost", store_dir / "x.gpg")
    assert not (store_dir / "x.gpg").exists()


def test_no_usable_key_creates_no_directories(gateway, store_dir):
    (store_dir / ".gpg-id").write_text("nobody@example.com\n")
    with pytest.raises(NoSigningKeyFound):
        gateway.encrypt(b"lost", store_dir / "new/dir/x.gpg")
    assert not (store_dir / "new").exists()


def test_read_gpg_ids(tmp_path):
    (tmp_path / ".gpg-id").write_text("one\n\n  two  \n")
    assert read_gpg_ids(tmp_path / ".gpg-id") == ["one", "two"]


def test_write_atomic_replaces(tmp_path):
    target = tmp_path / "file"
    target.write_bytes(b"old")
    write_atomic(target, b"new", 0o600)
    assert target.read_bytes() == b"new"
    assert [p.name for p in tmp_path.iterdir()] == ["file"]


def test_signed_entries(signing_gateway, store_dir):
    path = store_dir / "signed.gpg"
    signing_gateway.encrypt(b"signed", path)
    assert (store_dir / "signed.gpg.sig").is_file()
    assert signing_gateway.decrypt(path) == b"signed"


def test_missing_entry_signature(signing_gateway, store_dir):
    path = store_dir / "signed.gpg"
    signing_gateway.encrypt(b"signed", path)
    (store_dir / "signed.gpg.sig").unlink()
    with pytest.raises(MissingSignature):
        signing_gateway.decrypt(path)


def test_tampered_gpg_id(signing_gateway, store_dir, fingerprints):
    (store_dir / ".gpg-id").write_text(fingerprints["bob"] + "\n")
    with pytest.raises(BadSignature):
        signing_gateway.encrypt(b"x", store_dir / "x.gpg")
