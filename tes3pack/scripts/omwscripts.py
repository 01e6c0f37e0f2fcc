"""Conversion between .omwscripts text and LUAL script entries.

An .omwscripts file lists one script per line::

    # comment
    GLOBAL: scripts/mymod/global.lua
    NPC, CREATURE: scripts/mymod/actor.lua

Keys before the colon are either flags (GLOBAL, CUSTOM, PLAYER, MENU) or
names of the record types the script attaches to.
"""
from __future__ import annotations

import logging

from tes3pack.esm.constants import (
    LUA_FLAG_CUSTOM,
    LUA_FLAG_GLOBAL,
    LUA_FLAG_MENU,
    LUA_FLAG_PLAYER,
)
from tes3pack.esm.lua import LuaScript, LuaScripts, ScriptFlags, ScriptPath
from tes3pack.esm.records import Subrecord

logger = logging.getLogger(__name__)

FLAGS_BY_NAME = {
    "GLOBAL": LUA_FLAG_GLOBAL,
    "CUSTOM": LUA_FLAG_CUSTOM,
    "PLAYER": LUA_FLAG_PLAYER,
    "MENU": LUA_FLAG_MENU,
}

TAGS_BY_NAME = {
    "ACTIVATOR": "ACTI",
    "ARMOR": "ARMO",
    "BOOK": "BOOK",
    "CLOTHING": "CLOT",
    "CONTAINER": "CONT",
    "CREATURE": "CREA",
    "DOOR": "DOOR",
    "INGREDIENT": "INGR",
    "LIGHT": "LIGH",
    "MISC_ITEM": "MISC",
    "NPC": "NPC_",
    "POTION": "ALCH",
    "WEAPON": "WEAP",
    "APPARATUS": "APPA",
    "LOCKPICK": "LOCK",
    "PROBE": "PROB",
    "REPAIR": "REPA",
}

NAMES_BY_TAG = {tag: name for name, tag in TAGS_BY_NAME.items()}


class ScriptsError(ValueError):
    """Script entries that cannot be expressed as .omwscripts text."""


class ScriptsSyntaxError(ScriptsError):
    def __init__(self, line_no: int, line: str, reason: str):
        self.line_no = line_no
        self.line = line
        super().__init__(f"line {line_no}: {reason}: {line!r}")


def _is_comment(line: str) -> bool:
    return not line or line.startswith("#") or line.startswith("//")


def parse_scripts(text: str) -> list[LuaScript]:
    """Parse .omwscripts text into script entries, in file order."""
    scripts = []
    for line_no, raw in enumerate(text.splitlines(), 1):
        line = raw.strip()
        if _is_comment(line):
            continue
        keys, sep, path = line.partition(":")
        keys = keys.strip()
        path = path.strip()
        if not sep:
            raise ScriptsSyntaxError(line_no, line, "expected 'KEYS: path'")
        if not keys or not path:
            raise ScriptsSyntaxError(line_no, line, "empty attach list or path")

        flags = ScriptFlags()
        for key in keys.split(","):
            key = key.strip().upper()
            if key in FLAGS_BY_NAME:
                flags.flags |= FLAGS_BY_NAME[key]
            elif key in TAGS_BY_NAME:
                flags.targets.append(TAGS_BY_NAME[key])
            else:
                raise ScriptsSyntaxError(line_no, line, f"unknown attach key {key!r}")
        scripts.append(LuaScript(path=ScriptPath(path), flags=flags))
    return scripts


def package(text: str) -> list[Subrecord]:
    """Turn .omwscripts text into LUAS/LUAF subrecord pairs."""
    out = []
    for script in parse_scripts(text):
        out.extend(script.subrecords())
    return out


def _keys_for(script: LuaScript) -> list[str]:
    if script.flags is None:
        raise ScriptsError(f"{script.path.value}: no LUAF subrecord")
    keys = []
    remaining = script.flags.flags
    for name, bit in FLAGS_BY_NAME.items():
        if remaining & bit:
            keys.append(name)
            remaining &= ~bit
    if remaining:
        raise ScriptsError(f"{script.path.value}: flags 0x{remaining:x} have no .omwscripts key")
    for tag in script.flags.targets:
        name = NAMES_BY_TAG.get(tag)
        if name is None:
            raise ScriptsError(f"{script.path.value}: no .omwscripts key for target {tag!r}")
        keys.append(name)
    if not keys:
        raise ScriptsError(f"{script.path.value}: script attaches to nothing")
    return keys


def unpackage(lual: LuaScripts) -> str:
    """Render a LUAL record's scripts as .omwscripts text.

    Per-record and per-instance attachments (LUAR/LUAI) have no text form
    and are dropped with a warning.
    """
    lines = []
    for script in lual.scripts:
        if script.attachments:
            logger.warning("%s: dropping %d attachment subrecords",
                           script.path.value, len(script.attachments))
        lines.append(f"{', '.join(_keys_for(script))}: {script.path.value}")
    return "".join(line + "\n" for line in lines)
