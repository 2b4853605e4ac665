import hashlib
import io
import zipfile
from pathlib import Path

import pytest

from hostfetch.builder import FixedOutputBuilder
from hostfetch.digest import digest
from hostfetch.errors import (
    DigestMismatch,
    HostUnavailable,
    LocatorNotFound,
    PolicyError,
    RetrievalFailed,
    UnsupportedArchiveFormat,
)
from hostfetch.execution import EXIT_NOT_FOUND, EXIT_TEMPFAIL, InProcessExecutionContext
from hostfetch.execution.inprocess import Handler
from hostfetch.models import FetchOptions, ResolvedFetch, RetrievalProcedure
from hostfetch.policy import Policy
from hostfetch.store import ArtifactStore

FOLDER = {"a.txt": "alpha\n", "b.txt": "beta\n", "nested/c.txt": "gamma\n"}
PROCEDURE = RetrievalProcedure(
    argv=("fake-dl", "ABC123"),
    not_found_exit_codes=frozenset({EXIT_NOT_FOUND}),
    transient_exit_codes=frozenset({EXIT_TEMPFAIL}),
    tool="fake-dl",
    description="fake-dl ABC123",
)


def test_tree_fetch_is_published_at_declared_digest(
    tmp_path: Path,
    inprocess_context: InProcessExecutionContext,
    store: ArtifactStore,
) -> None:
    inprocess_context.register("fake-dl", _writes_folder(FOLDER))
    expected = digest(_reference_tree(tmp_path, FOLDER))
    builder = FixedOutputBuilder(context=inprocess_context, store=store)

    artifact = builder.build(PROCEDURE, expected, "sha256", "tree", locator="ABC123")

    assert artifact.path == store.root / f"sha256-{expected}"
    assert artifact.shape == "tree"
    assert (artifact.path / "nested" / "c.txt").read_text(encoding="utf-8") == "gamma\n"
    assert digest(artifact.path) == expected


def test_wrong_digest_fails_without_artifact_and_removes_scratch(
    inprocess_context: InProcessExecutionContext,
    store: ArtifactStore,
) -> None:
    inprocess_context.register("fake-dl", _writes_folder(FOLDER))
    builder = FixedOutputBuilder(context=inprocess_context, store=store)

    with pytest.raises(DigestMismatch) as excinfo:
        builder.build(PROCEDURE, "0" * 64, "sha256", "tree", options=FetchOptions(retries=3))

    error = excinfo.value
    assert error.expected == "0" * 64
    assert error.context["actual"] == error.actual
    assert error.context["locator"] == "fake-dl ABC123"
    assert len(inprocess_context.calls) == 1
    assert not (store.root / f"sha256-{'0' * 64}").exists()
    assert list((store.root / ".tmp").iterdir()) == []


def test_not_found_is_retried_up_to_the_configured_attempts(
    inprocess_context: InProcessExecutionContext,
    store: ArtifactStore,
) -> None:
    inprocess_context.register("fake-dl", lambda procedure, out: EXIT_NOT_FOUND)
    builder = FixedOutputBuilder(context=inprocess_context, store=store)

    with pytest.raises(LocatorNotFound) as excinfo:
        builder.build(PROCEDURE, "0" * 64, options=FetchOptions(retries=2))

    assert isinstance(excinfo.value, RetrievalFailed)
    assert excinfo.value.context["attempt"] == "3/3"
    assert len(inprocess_context.calls) == 3


def test_transient_failure_recovers_with_exponential_backoff(
    inprocess_context: InProcessExecutionContext,
    store: ArtifactStore,
) -> None:
    outcomes = iter([EXIT_TEMPFAIL, EXIT_TEMPFAIL, 0])

    def flaky(procedure: RetrievalProcedure, out: Path) -> int:
        code = next(outcomes)
        if code == 0:
            out.write_bytes(b"payload")
        return code

    inprocess_context.register("fake-dl", flaky)
    delays: list[float] = []
    builder = FixedOutputBuilder(context=inprocess_context, store=store, sleep=delays.append)

    artifact = builder.build(
        PROCEDURE,
        hashlib.sha256(b"payload").hexdigest(),
        shape="file",
        options=FetchOptions(retries=2, backoff=0.5),
    )

    assert artifact.path.read_bytes() == b"payload"
    assert delays == [0.5, 1.0]
    levels = [record["level"] for record in builder.logger.records]
    assert levels.count("error") == 2


def test_transient_failure_without_retries_surfaces_host_unavailable(
    inprocess_context: InProcessExecutionContext,
    store: ArtifactStore,
) -> None:
    inprocess_context.register("fake-dl", lambda procedure, out: EXIT_TEMPFAIL)
    builder = FixedOutputBuilder(context=inprocess_context, store=store)

    with pytest.raises(HostUnavailable):
        builder.build(PROCEDURE, "0" * 64)


def test_zero_exit_without_output_is_a_retrieval_failure(
    inprocess_context: InProcessExecutionContext,
    store: ArtifactStore,
) -> None:
    inprocess_context.register("fake-dl", lambda procedure, out: 0)
    builder = FixedOutputBuilder(context=inprocess_context, store=store)

    with pytest.raises(RetrievalFailed) as excinfo:
        builder.build(PROCEDURE, "0" * 64)

    assert type(excinfo.value) is RetrievalFailed


def test_sub_path_selection_hashes_only_the_selected_file(
    inprocess_context: InProcessExecutionContext,
    store: ArtifactStore,
) -> None:
    folder = {f"file{i}.txt": f"content {i}\n" for i in range(4)} | {"notes.txt": "remember\n"}
    inprocess_context.register("fake-dl", _writes_folder(folder))
    builder = FixedOutputBuilder(context=inprocess_context, store=store)
    expected = hashlib.sha256(b"remember\n").hexdigest()

    artifact = builder.build(
        PROCEDURE,
        expected,
        shape="tree",
        options=FetchOptions(sub_path="notes.txt"),
    )

    assert artifact.shape == "file"
    assert artifact.name == "notes.txt"
    assert artifact.path.read_bytes() == b"remember\n"


def test_unpack_normalizes_archive_before_hashing(
    tmp_path: Path,
    inprocess_context: InProcessExecutionContext,
    store: ArtifactStore,
) -> None:
    payload = io.BytesIO()
    with zipfile.ZipFile(payload, "w") as zf:
        for name, content in FOLDER.items():
            zf.writestr(f"wrapper/{name}", content)
    archive_bytes = payload.getvalue()

    def download(procedure: RetrievalProcedure, out: Path) -> int:
        out.write_bytes(archive_bytes)
        return 0

    inprocess_context.register("fake-dl", download)
    builder = FixedOutputBuilder(context=inprocess_context, store=store)
    expected = digest(_reference_tree(tmp_path, FOLDER))

    artifact = builder.build(
        PROCEDURE,
        expected,
        shape="file",
        options=FetchOptions(unpack=True, rename_to="dataset"),
    )

    assert artifact.shape == "tree"
    assert artifact.name == "dataset"
    assert sorted(p.name for p in artifact.path.iterdir()) == ["a.txt", "b.txt", "nested"]


def test_archive_selected_from_folder_is_unpacked(
    tmp_path: Path,
    inprocess_context: InProcessExecutionContext,
    store: ArtifactStore,
) -> None:
    archive_bytes = _zip_bytes({f"bundle/{name}": content for name, content in FOLDER.items()})

    def download(procedure: RetrievalProcedure, out: Path) -> int:
        (out / "share").mkdir(parents=True)
        (out / "share" / "bundle.zip").write_bytes(archive_bytes)
        (out / "share" / "readme.txt").write_text("read me\n", encoding="utf-8")
        return 0

    inprocess_context.register("fake-dl", download)
    builder = FixedOutputBuilder(context=inprocess_context, store=store)
    resolved = ResolvedFetch(procedure=PROCEDURE, shape="tree", sub_path="bundle.zip", unwrap=True)
    expected = digest(_reference_tree(tmp_path, FOLDER))

    artifact = builder.build_resolved(
        resolved,
        expected,
        options=FetchOptions(sub_path="bundle.zip", unpack=True),
        locator="share",
    )

    assert artifact.shape == "tree"
    assert artifact.name == "bundle.zip"
    assert sorted(p.name for p in artifact.path.iterdir()) == ["a.txt", "b.txt", "nested"]


def test_unpacking_a_folder_is_rejected_with_locator(
    inprocess_context: InProcessExecutionContext,
    store: ArtifactStore,
) -> None:
    inprocess_context.register("fake-dl", _writes_folder(FOLDER))
    builder = FixedOutputBuilder(context=inprocess_context, store=store)

    with pytest.raises(UnsupportedArchiveFormat) as excinfo:
        builder.build(
            PROCEDURE,
            "0" * 64,
            shape="tree",
            options=FetchOptions(unpack=True, retries=2),
            locator="ABC123",
        )

    assert excinfo.value.context["locator"] == "ABC123"
    assert len(inprocess_context.calls) == 1


def test_unreadable_output_is_a_classified_retrieval_failure(
    inprocess_context: InProcessExecutionContext,
    store: ArtifactStore,
) -> None:
    def dangling(procedure: RetrievalProcedure, out: Path) -> int:
        out.symlink_to(out.parent / "missing")
        return 0

    inprocess_context.register("fake-dl", dangling)
    builder = FixedOutputBuilder(context=inprocess_context, store=store)

    with pytest.raises(RetrievalFailed) as excinfo:
        builder.build(PROCEDURE, "0" * 64, shape="file", host="buzzheavier", locator="q9w8e7")

    assert isinstance(excinfo.value.__cause__, OSError)
    assert excinfo.value.context["host"] == "buzzheavier"
    assert excinfo.value.context["locator"] == "q9w8e7"
    assert excinfo.value.context["attempt"] == "1/1"


def test_repeated_builds_share_one_content_address(
    inprocess_context: InProcessExecutionContext,
    store: ArtifactStore,
) -> None:
    inprocess_context.register("fake-dl", _writes_folder(FOLDER))
    builder = FixedOutputBuilder(context=inprocess_context, store=store)
    expected = _digest_of_folder(store.root.parent, FOLDER)

    first = builder.build(PROCEDURE, expected, shape="tree")
    second = builder.build(PROCEDURE, expected, shape="tree")

    assert first.path == second.path
    assert len(inprocess_context.calls) == 2
    assert digest(second.path) == expected


def test_offline_policy_blocks_network_procedures(store: ArtifactStore) -> None:
    context = InProcessExecutionContext(policy=Policy(network_mode="offline"))
    builder = FixedOutputBuilder(context=context, store=store)

    with pytest.raises(PolicyError):
        builder.build(PROCEDURE, "0" * 64, options=FetchOptions(retries=5))

    assert context.calls == []


def _writes_folder(files: dict[str, str]) -> Handler:
    def handler(procedure: RetrievalProcedure, out: Path) -> int:
        _reference_tree_at(out, files)
        return 0

    return handler


def _reference_tree(tmp_path: Path, files: dict[str, str]) -> Path:
    return _reference_tree_at(tmp_path / "reference", files)


def _digest_of_folder(tmp_path: Path, files: dict[str, str]) -> str:
    return digest(_reference_tree_at(tmp_path / "reference-digest", files))


def _reference_tree_at(root: Path, files: dict[str, str]) -> Path:
    for relpath, content in files.items():
        path = root / relpath
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


def _zip_bytes(files: dict[str, str]) -> bytes:
    payload = io.BytesIO()
    with zipfile.ZipFile(payload, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return payload.getvalue()
