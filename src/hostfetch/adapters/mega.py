"""Mega share links fetched with ``megatools dl``.

Accepted links::

    https://mega.nz/file/<id>#<key>
    https://mega.nz/folder/<id>#<key>[/file/<node>|/folder/<node>]
    https://mega.nz/#!<id>!<key>
    https://mega.nz/#F!<id>!<key>[!<node>]

A node suffix on a folder link selects one entry of the folder, which megatools
downloads on its own. Name-based ``sub_path`` selection is not supported by
the host, so the whole folder is fetched and pruned afterwards.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from hostfetch.adapters.base import HostKind, quote, script_procedure
from hostfetch.errors import UnsupportedLocatorShape
from hostfetch.execution.base import EXIT_NOT_FOUND
from hostfetch.models import Locator, OutputShape, ResolvedFetch
from hostfetch.policy import Toolchain

_HOST = r"https?://(?:www\.)?mega(?:\.co)?\.nz"
_MODERN = re.compile(
    _HOST + r"/(?P<kind>file|folder)/(?P<id>[\w-]+)#(?P<key>[\w-]+)"
    r"(?:/(?P<node_kind>file|folder)/(?P<node>[\w-]+))?/?$"
)
_LEGACY = re.compile(
    _HOST + r"/#(?P<folder>F)?!(?P<id>[\w-]+)!(?P<key>[\w-]+)(?:!(?P<node>[\w-]+))?$"
)

_SCRIPT = """\
mkdir -p "$out"
if ! {megatools} dl --no-progress --path "$out" "$1" 2>"$HOME/megatools.err"; then
  cat "$HOME/megatools.err" >&2
  if grep -qiE 'ENOENT|not found|does not exist' "$HOME/megatools.err"; then
    exit {not_found}
  fi
  exit 1
fi
"""


@dataclass(frozen=True, slots=True)
class MegaLink:
    id: str
    key: str
    folder: bool
    node: str | None = None
    node_is_folder: bool | None = None

    @property
    def url(self) -> str:
        base = f"https://mega.nz/{'folder' if self.folder else 'file'}/{self.id}#{self.key}"
        if self.node is None:
            return base
        if self.node_is_folder is None:
            # Legacy node links do not say whether the node is a file or a folder.
            return f"https://mega.nz/#F!{self.id}!{self.key}!{self.node}"
        return f"{base}/{'folder' if self.node_is_folder else 'file'}/{self.node}"


def parse_mega_link(ref: str) -> MegaLink:
    text = ref.strip()
    modern = _MODERN.fullmatch(text)
    if modern is not None:
        node_kind = modern.group("node_kind")
        if node_kind is not None and modern.group("kind") != "folder":
            raise _unsupported(ref, "Only folder links may select a node.")
        return MegaLink(
            id=modern.group("id"),
            key=modern.group("key"),
            folder=modern.group("kind") == "folder",
            node=modern.group("node"),
            node_is_folder=None if node_kind is None else node_kind == "folder",
        )
    legacy = _LEGACY.fullmatch(text)
    if legacy is not None:
        folder = legacy.group("folder") is not None
        if legacy.group("node") is not None and not folder:
            raise _unsupported(ref, "Only folder links may select a node.")
        return MegaLink(
            id=legacy.group("id"),
            key=legacy.group("key"),
            folder=folder,
            node=legacy.group("node"),
        )
    raise _unsupported(ref, "Expected a mega.nz file or folder link including its key.")


def _unsupported(ref: str, hint: str) -> UnsupportedLocatorShape:
    return UnsupportedLocatorShape(
        "Unrecognized Mega locator.",
        hint=hint,
        context={"host": HostKind.MEGA.value, "locator": ref},
    )


@dataclass(slots=True)
class MegaAdapter:
    kind: HostKind = HostKind.MEGA
    toolchain: Toolchain = field(default_factory=Toolchain)

    def resolve(self, locator: Locator, *, sub_path: str | None = None) -> ResolvedFetch:
        link = parse_mega_link(locator.ref)
        if locator.folder is not None and locator.folder != link.folder:
            raise _unsupported(
                locator.ref,
                f"Locator was flagged as a {'folder' if locator.folder else 'file'} "
                f"but the link names a {'folder' if link.folder else 'file'}.",
            )
        if sub_path is not None and not link.folder:
            raise _unsupported(locator.ref, "sub_path selection needs a folder link.")

        shape: OutputShape
        if link.node is not None:
            shape = "auto" if link.node_is_folder is None else (
                "tree" if link.node_is_folder else "file"
            )
        else:
            shape = "tree" if link.folder else "file"

        script = _SCRIPT.format(
            megatools=quote(self.toolchain.megatools),
            not_found=EXIT_NOT_FOUND,
        )
        procedure = script_procedure(
            self.toolchain,
            script,
            link.url,
            tool="megatools",
            description=f"megatools dl {link.url}",
        )
        # megatools always writes the named file or folder inside $out.
        return ResolvedFetch(
            procedure=procedure,
            shape=shape,
            sub_path=sub_path,
            name=link.node or link.id,
            unwrap=True,
        )
