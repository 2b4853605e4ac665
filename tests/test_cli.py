import hashlib
import json
from pathlib import Path

import pytest

from hostfetch.cli import main
from hostfetch.digest import digest, to_sri


def test_hash_prints_file_and_tree_digests(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    blob = tmp_path / "blob"
    blob.write_bytes(b"blob")
    tree = tmp_path / "tree"
    tree.mkdir()
    (tree / "x.txt").write_text("x", encoding="utf-8")

    assert main(["hash", str(blob)]) == 0
    assert main(["hash", str(tree), "--sri"]) == 0

    lines = capsys.readouterr().out.splitlines()
    assert lines == [hashlib.sha256(b"blob").hexdigest(), to_sri(digest(tree), "sha256")]


def test_fetch_failure_prints_classified_error_and_writes_log(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    log_file = tmp_path / "fetch.jsonl"

    code = main(
        [
            "fetch",
            "gofile",
            "ABC123",
            "--hash",
            "0" * 64,
            "--offline",
            "--store",
            str(tmp_path / "store"),
            "--log-file",
            str(log_file),
        ]
    )

    assert code == 1
    err = capsys.readouterr().err
    assert "E_POLICY" in err
    assert "locator: ABC123" in err
    records = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
    assert records[-1]["level"] == "error"


def test_fetch_rejects_invalid_digest(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = main(["fetch", "gofile", "ABC123", "--hash", "nothex", "--store", str(tmp_path)])

    assert code == 1
    assert "E_VALIDATION" in capsys.readouterr().err
