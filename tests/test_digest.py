import base64
import hashlib
import os
from pathlib import Path

import pytest

from hostfetch.digest import (
    digest,
    digest_file,
    digest_tree,
    parse_expected,
    to_sri,
    tree_entries,
    verify,
)
from hostfetch.errors import ValidationError

FILES = {"a.txt": "alpha\n", "sub/b.txt": "beta\n", "sub/deeper/c.txt": "gamma\n"}


def test_file_digest_is_plain_content_hash(tmp_path: Path) -> None:
    path = tmp_path / "payload.bin"
    path.write_bytes(b"hello hostfetch")

    assert digest_file(path) == hashlib.sha256(b"hello hostfetch").hexdigest()
    assert digest(path, "sha512") == hashlib.sha512(b"hello hostfetch").hexdigest()


def test_tree_digest_is_independent_of_creation_order(tmp_path: Path) -> None:
    first = _write_tree(tmp_path / "first", FILES)
    second = _write_tree(tmp_path / "second", dict(reversed(list(FILES.items()))))

    assert digest_tree(first) == digest_tree(second)


def test_tree_digest_changes_with_single_byte_edit(tmp_path: Path) -> None:
    tree = _write_tree(tmp_path / "tree", FILES)
    before = digest(tree)

    (tree / "sub" / "b.txt").write_text("betb\n", encoding="utf-8")

    assert digest(tree) != before


def test_tree_digest_changes_with_path_rename(tmp_path: Path) -> None:
    tree = _write_tree(tmp_path / "tree", FILES)
    before = digest(tree)

    (tree / "a.txt").rename(tree / "renamed.txt")

    assert digest(tree) != before


def test_tree_digest_tracks_executable_bit_but_not_mtime(tmp_path: Path) -> None:
    tree = _write_tree(tmp_path / "tree", {"run.sh": "echo hi\n"})
    script = tree / "run.sh"
    script.chmod(0o644)
    plain = digest(tree)

    os.utime(script, (0, 0))
    assert digest(tree) == plain

    script.chmod(0o755)
    assert digest(tree) != plain


def test_tree_entries_ignore_empty_directories_and_record_symlinks(tmp_path: Path) -> None:
    tree = _write_tree(tmp_path / "tree", {"data.txt": "x"})
    (tree / "empty").mkdir()
    (tree / "link").symlink_to("data.txt")

    entries = tree_entries(tree)

    assert [entry[1] for entry in entries] == ["data.txt", "link"]
    assert entries[1] == ["l", "link", "data.txt"]


def test_parse_expected_accepts_hex_prefixed_and_sri_forms() -> None:
    raw = hashlib.sha256(b"content").digest()
    hex_value = raw.hex()
    sri = "sha256-" + base64.b64encode(raw).decode()

    assert parse_expected(hex_value.upper()).value == hex_value
    assert parse_expected(f"sha256:{hex_value}").value == hex_value
    assert parse_expected(sri).value == hex_value
    assert to_sri(hex_value, "sha256") == sri


@pytest.mark.parametrize(
    "value",
    ["", "   ", "abc", "z" * 64, "sha512-" + base64.b64encode(b"\x00" * 64).decode()],
)
def test_parse_expected_rejects_invalid_values(value: str) -> None:
    with pytest.raises(ValidationError):
        parse_expected(value, "sha256")


def test_parse_expected_rejects_unknown_algorithm() -> None:
    with pytest.raises(ValidationError) as excinfo:
        parse_expected("00" * 16, "md5")

    assert excinfo.value.context["algorithm"] == "md5"


def test_verify_compares_case_insensitively() -> None:
    value = hashlib.sha256(b"x").hexdigest()

    assert verify(value, value.upper())
    assert not verify(value, "0" * 64)


def _write_tree(root: Path, files: dict[str, str]) -> Path:
    for relpath, content in files.items():
        path = root / relpath
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root
