"""Gofile shares fetched through the public ``api.gofile.io`` endpoints.

A share code always names a folder. The script creates a guest account,
lists the folder and downloads every file, recursing into sub-folders. When
the caller selects a sub-path, only its first component is listed for
download; deeper components are pruned by the builder.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from hostfetch.adapters.base import CURL_TRANSIENT_EXIT_CODES, HostKind, quote, script_procedure
from hostfetch.archive import sub_path_parts
from hostfetch.errors import UnsupportedLocatorShape
from hostfetch.execution.base import EXIT_NOT_FOUND, EXIT_TEMPFAIL
from hostfetch.models import Locator, ResolvedFetch
from hostfetch.policy import Toolchain

API_ROOT = "https://api.gofile.io"
# Public token the gofile.io web client sends with content listings.
WEBSITE_TOKEN = "4fd6sg89d7s6"

_CODE = re.compile(r"[A-Za-z0-9]+")
_LINK = re.compile(r"https?://(?:www\.)?gofile\.io/d/(?P<code>[A-Za-z0-9]+)/?")

_SCRIPT = """\
curl={curl}
jq={jq}
api={api}
token=$("$curl" -fsS -X POST "$api/accounts" | "$jq" -r '.data.token') || exit {tempfail}
[ -n "$token" ] && [ "$token" != null ] || exit {tempfail}

list() {{
  local meta status
  meta=$("$curl" -sS -H "Authorization: Bearer $token" "$api/contents/$1?wt={wt}")
  status=$(printf '%s' "$meta" | "$jq" -r '.status')
  case "$status" in
    ok) ;;
    error-notFound) echo "gofile: $1 not found" >&2; exit {not_found} ;;
    *) echo "gofile: listing $1 failed: $status" >&2; exit {tempfail} ;;
  esac
  printf '%s' "$meta" | "$jq" -r --arg sel "$2" \\
    '.data.children[] | select($sel == "" or .name == $sel)
     | [.type, .id, .name, (.link // "")] | @tsv'
}}

fetch_folder() {{
  local id=$1 dest=$2 sel=$3 entries type child name link
  mkdir -p "$dest"
  entries=$(list "$id" "$sel")
  if [ -n "$sel" ] && [ -z "$entries" ]; then
    echo "gofile: $sel not found in $id" >&2
    exit {not_found}
  fi
  while IFS=$'\\t' read -r type child name link; do
    [ -n "$type" ] || continue
    if [ "$type" = folder ]; then
      fetch_folder "$child" "$dest/$name" ""
    else
      "$curl" -fsSL -H "Cookie: accountToken=$token" -o "$dest/$name" "$link"
    fi
  done <<< "$entries"
}}

fetch_folder "$1" "$out" "$2"
"""


def parse_gofile_code(ref: str) -> str:
    text = ref.strip()
    link = _LINK.fullmatch(text)
    if link is not None:
        return link.group("code")
    if _CODE.fullmatch(text):
        return text
    raise UnsupportedLocatorShape(
        "Unrecognized Gofile locator.",
        hint="Use a share code or a https://gofile.io/d/<code> link.",
        context={"host": HostKind.GOFILE.value, "locator": ref},
    )


@dataclass(slots=True)
class GofileAdapter:
    kind: HostKind = HostKind.GOFILE
    toolchain: Toolchain = field(default_factory=Toolchain)
    website_token: str = WEBSITE_TOKEN

    def resolve(self, locator: Locator, *, sub_path: str | None = None) -> ResolvedFetch:
        code = parse_gofile_code(locator.ref)
        if locator.folder is False:
            raise UnsupportedLocatorShape(
                "Gofile share codes always name folders.",
                hint="Pass the folder code and select the file with sub_path.",
                context={"host": self.kind.value, "locator": locator.ref},
            )

        selected = ""
        remainder: str | None = None
        if sub_path is not None:
            parts = sub_path_parts(sub_path)
            selected = parts[0]
            remainder = "/".join(parts[1:]) or None

        script = _SCRIPT.format(
            curl=quote(self.toolchain.curl),
            jq=quote(self.toolchain.jq),
            api=quote(API_ROOT),
            wt=self.website_token,
            not_found=EXIT_NOT_FOUND,
            tempfail=EXIT_TEMPFAIL,
        )
        procedure = script_procedure(
            self.toolchain,
            script,
            code,
            selected,
            tool="gofile",
            description=f"gofile {code}" + (f" [{selected}]" if selected else ""),
            transient_exit_codes=CURL_TRANSIENT_EXIT_CODES,
        )
        if selected:
            # Only the selected child is written inside $out.
            return ResolvedFetch(
                procedure=procedure,
                shape="auto",
                sub_path=remainder,
                name=selected,
                unwrap=True,
            )
        return ResolvedFetch(procedure=procedure, shape="tree", name=code)
