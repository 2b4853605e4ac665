"""Buzzheavier single-file downloads.

The download page answers an htmx request with an ``hx-redirect`` header
pointing at the real file; the script follows it with curl.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from hostfetch.adapters.base import CURL_TRANSIENT_EXIT_CODES, HostKind, quote, script_procedure
from hostfetch.errors import UnsupportedLocatorShape
from hostfetch.execution.base import EXIT_NOT_FOUND, EXIT_TEMPFAIL
from hostfetch.models import Locator, ResolvedFetch
from hostfetch.policy import Toolchain

SITE_ROOT = "https://buzzheavier.com"

_ID = re.compile(r"[A-Za-z0-9]+")
_LINK = re.compile(r"https?://(?:www\.)?buzzheavier\.com/(?:f/)?(?P<id>[A-Za-z0-9]+)/?")

_SCRIPT = """\
curl={curl}
site={site}
page="$site/$1"
headers=$("$curl" -sS -o /dev/null -D - \\
  -H "hx-request: true" -H "hx-current-url: $page" -H "referer: $page" \\
  "$page/download") || exit {tempfail}
status=$(printf '%s\\n' "$headers" | tr -d '\\r' | awk 'NR == 1 {{print $2}}')
case "$status" in
  404|410) echo "buzzheavier: $1 not found" >&2; exit {not_found} ;;
  5*) echo "buzzheavier: server error $status" >&2; exit {tempfail} ;;
esac
url=$(printf '%s\\n' "$headers" | tr -d '\\r' | awk 'tolower($1) == "hx-redirect:" {{print $2; exit}}')
if [ -z "$url" ]; then
  echo "buzzheavier: no download redirect for $page" >&2
  exit {not_found}
fi
case "$url" in
  /*) url="$site$url" ;;
esac
"$curl" -fsSL -o "$out" "$url"
"""


def parse_buzzheavier_id(ref: str) -> str:
    text = ref.strip()
    link = _LINK.fullmatch(text)
    if link is not None:
        return link.group("id")
    if _ID.fullmatch(text):
        return text
    raise UnsupportedLocatorShape(
        "Unrecognized Buzzheavier locator.",
        hint="Use a file ID or a https://buzzheavier.com/<id> link.",
        context={"host": HostKind.BUZZHEAVIER.value, "locator": ref},
    )


@dataclass(slots=True)
class BuzzheavierAdapter:
    kind: HostKind = HostKind.BUZZHEAVIER
    toolchain: Toolchain = field(default_factory=Toolchain)

    def resolve(self, locator: Locator, *, sub_path: str | None = None) -> ResolvedFetch:
        file_id = parse_buzzheavier_id(locator.ref)
        if locator.folder:
            raise UnsupportedLocatorShape(
                "Buzzheavier locators name single files only.",
                context={"host": self.kind.value, "locator": locator.ref},
            )
        script = _SCRIPT.format(
            curl=quote(self.toolchain.curl),
            site=quote(SITE_ROOT),
            not_found=EXIT_NOT_FOUND,
            tempfail=EXIT_TEMPFAIL,
        )
        procedure = script_procedure(
            self.toolchain,
            script,
            file_id,
            tool="buzzheavier",
            description=f"buzzheavier {file_id}",
            transient_exit_codes=CURL_TRANSIENT_EXIT_CODES,
        )
        # A sub_path only makes sense inside an unpacked archive; the builder checks.
        return ResolvedFetch(procedure=procedure, shape="file", sub_path=sub_path, name=file_id)
