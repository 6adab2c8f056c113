import io
import shutil
import sys

import pytest

from passvault.clipboard import HASH_VARIABLE
from passvault.cli import build_parser, main


@pytest.fixture
def env(monkeypatch, tmp_path, store_dir, keyring):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("PASSWORD_STORE_DIR", str(store_dir))
    monkeypatch.setenv("PASSVAULT_KEYRING", str(keyring.directory))
    monkeypatch.setenv("EDITOR", "true")
    monkeypatch.delenv("PASSWORD_STORE_KEY", raising=False)
    monkeypatch.delenv("PASSWORD_STORE_SIGNING_KEY", raising=False)
    monkeypatch.delenv(HASH_VARIABLE, raising=False)
    return store_dir


@pytest.fixture
def initialised(env, fingerprints, request):
    # Share whichever capture fixture the test uses (capsys and capfd conflict).
    capture = request.getfixturevalue("capfd" if "capfd" in request.fixturenames else "capsys")
    assert main(["init", fingerprints["alice"]]) == 0
    capture.readouterr()
    return env


def test_init(env, fingerprints, capsys):
    assert main(["init", fingerprints["alice"]]) == 0
    assert (env / ".gpg-id").read_text().strip() == fingerprints["alice"]
    assert "Password store initialized" in capsys.readouterr().out


def test_errors_exit_non_zero(env, capsys):
    assert main(["show", "anything"]) == 1
    assert "Store does not exist" in capsys.readouterr().err


def test_invalid_configuration(env, monkeypatch, capsys):
    monkeypatch.setenv("PASSWORD_STORE_CLIP_TIME", "soon")
    assert main(["ls"]) == 1
    assert "PASSWORD_STORE_CLIP_TIME" in capsys.readouterr().err


def test_insert_and_show(initialised, monkeypatch, capsys):
    monkeypatch.setattr(sys, "stdin", io.StringIO("s3cret\n"))
    assert main(["insert", "-e", "Email/work"]) == 0
    capsys.readouterr()
    assert main(["show", "Email/work"]) == 0
    assert capsys.readouterr().out == "s3cret\n"


def test_default_command_lists(initialised, capsys):
    assert main(["generate", "Internet/site", "16"]) == 0
    capsys.readouterr()
    assert main([]) == 0
    out = capsys.readouterr().out
    assert "Password Store" in out
    assert "Internet" in out and "site" in out


def test_ls_entry_shows_it(initialised, capsys):
    assert main(["generate", "-n", "site", "20"]) == 0
    password = capsys.readouterr().out.strip().splitlines()[-1]
    assert main(["ls", "site"]) == 0
    assert capsys.readouterr().out.strip() == password


def test_find_and_grep(initialised, capsys):
    main(["generate", "Internet/github.com"])
    main(["generate", "Work/gitlab.com"])
    capsys.readouterr()
    assert main(["find", "git"]) == 0
    out = capsys.readouterr().out
    assert "Work/gitlab.com" in out and "Internet/github.com" in out
    assert main(["grep", "."]) == 0
    assert "Entry" in capsys.readouterr().out


def test_grep_invalid_pattern(initialised, capsys):
    main(["generate", "a"])
    capsys.readouterr()
    assert main(["grep", "("]) == 1
    assert "Error: Invalid pattern" in capsys.readouterr().err


def test_rm_mv_cp(initialised, capsys):
    main(["generate", "a"])
    assert main(["cp", "a", "b"]) == 0
    assert main(["mv", "b", "dir/c"]) == 0
    assert (initialised / "dir/c.gpg").is_file()
    assert main(["rm", "-f", "dir/c"]) == 0
    assert not (initialised / "dir").exists()
    assert main(["rm", "-f", "a", "--recursive"]) == 0


def test_edit_unchanged_is_reported(initialised, capsys):
    main(["generate", "a"])
    capsys.readouterr()
    assert main(["edit", "a"]) == 1
    assert "Contents unchanged" in capsys.readouterr().err


def test_key_list(env, fingerprints, capsys):
    assert main(["key", "list"]) == 0
    out = capsys.readouterr().out
    assert fingerprints["alice"] in out
    assert "Alice <alice@example.com>" in out


def test_key_import(env, tmp_path, key_files, capsys, monkeypatch):
    monkeypatch.setenv("PASSVAULT_KEYRING", str(tmp_path / "fresh"))
    assert main(["key", "import", str(key_files["bob"])]) == 0
    assert (tmp_path / "fresh" / key_files["bob"].name).is_file()


def test_unclip_by_hand(env, capsys):
    assert main(["unclip", "5"]) == 0
    assert "not by hand" in capsys.readouterr().out


def test_parser():
    args = build_parser().parse_args(["show", "-c", "site"])
    assert args.clip == 1
    args = build_parser().parse_args(["show", "-c2", "site"])
    assert args.clip == 2
    args = build_parser().parse_args(["generate", "-n", "-i", "site", "12"])
    assert (args.no_symbols, args.in_place, args.length) == (True, True, 12)
    with pytest.raises(SystemExit):
        build_parser().parse_args(["generate", "-i", "-f", "site"])


@pytest.mark.skipif(shutil.which("git") is None, reason="git binary not available")
def test_git_passthrough(initialised, capfd):
    assert main(["git", "log", "--format=%s"]) == 0
    assert "Set GPG id to" in capfd.readouterr().out
