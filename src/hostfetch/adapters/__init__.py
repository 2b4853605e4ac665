"""Host adapters translating locators into retrieval procedures."""

from __future__ import annotations

from hostfetch.adapters.base import HostAdapter, HostKind
from hostfetch.adapters.buzzheavier import BuzzheavierAdapter
from hostfetch.adapters.gofile import GofileAdapter
from hostfetch.adapters.mega import MegaAdapter
from hostfetch.errors import UnsupportedLocatorShape
from hostfetch.policy import Toolchain

ADAPTERS: dict[HostKind, type[MegaAdapter] | type[GofileAdapter] | type[BuzzheavierAdapter]] = {
    HostKind.MEGA: MegaAdapter,
    HostKind.GOFILE: GofileAdapter,
    HostKind.BUZZHEAVIER: BuzzheavierAdapter,
}


def adapter_for(kind: HostKind | str, toolchain: Toolchain | None = None) -> HostAdapter:
    try:
        host = HostKind(kind)
    except ValueError:
        raise UnsupportedLocatorShape(
            f"Unknown host kind `{kind}`.",
            hint=f"Use one of: {', '.join(item.value for item in HostKind)}.",
            context={"host": str(kind)},
        ) from None
    return ADAPTERS[host](toolchain=toolchain or Toolchain())


__all__ = [
    "ADAPTERS",
    "BuzzheavierAdapter",
    "GofileAdapter",
    "HostAdapter",
    "HostKind",
    "MegaAdapter",
    "adapter_for",
]
