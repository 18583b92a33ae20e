"""Stat key -> SNES address catalog and the active address table."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from types import MappingProxyType
from typing import Mapping

logger = logging.getLogger(__name__)

# usb2snes exposes WRAM at F50000 and save RAM mirror at F5F000
WRAM_START = 0xF50000
SRAM_START = 0xF5F000

ALL_ADDRESSES: Mapping[str, int] = MappingProxyType({
    "bonks": SRAM_START + 0x420,
    "checks": SRAM_START + 0x423,
    "saveandquit": SRAM_START + 0x42D,
    "heartpieces": SRAM_START + 0x448,
    "deaths": SRAM_START + 0x449,
    "flutes": SRAM_START + 0x44B,
    "revivals": SRAM_START + 0x453,
    "dungeonmirrors": SRAM_START + 0x43B,
    "overworldmirrors": SRAM_START + 0x43A,
    "timer": WRAM_START + 0x00,
    "gamemode": WRAM_START + 0x10,
    "triforce": WRAM_START + 0x19,
})

MANDATORY_KEYS = ("timer", "gamemode", "triforce")


def format_address(address: int) -> str:
    """Uppercase hex without 0x prefix, as usb2snes expects it."""
    return f"{address:X}"


class AddressRegistry:
    """Holds the catalog and derives the active table from a selection.

    The active table is rebuilt wholesale on every selection change and
    handed out read-only, so a poll cycle that grabbed the old table keeps
    a consistent view.
    """

    def __init__(self, catalog: Mapping[str, int] = ALL_ADDRESSES) -> None:
        self.catalog = catalog
        self.selection: tuple[str, ...] = ()
        self._table: Mapping[str, int] = self._build(())

    @property
    def table(self) -> Mapping[str, int]:
        return self._table

    def _build(self, keys: Iterable[str]) -> Mapping[str, int]:
        table = {key: self.catalog[key] for key in MANDATORY_KEYS}
        for key in keys:
            if key in self.catalog:
                table[key] = self.catalog[key]
            else:
                logger.debug(f"Ignoring unknown stat key: {key!r}")
        return MappingProxyType(table)

    def select(self, keys: Iterable[str]) -> Mapping[str, int]:
        keys = tuple(keys)
        self.selection = keys
        self._table = self._build(keys)
        logger.info(f"📋 Active stats: {', '.join(self._table)}")
        return self._table
