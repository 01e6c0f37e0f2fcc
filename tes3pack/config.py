"""Locate and read game configuration: openmw.cfg and morrowind.ini."""
from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

from tes3pack.esm.constants import PLUGIN_EXTENSIONS
from tes3pack.vfs import DataFiles

logger = logging.getLogger(__name__)

OPENMW_CFG = "openmw.cfg"
CONTENT_EXTENSIONS = PLUGIN_EXTENSIONS | {".omwscripts"}


@dataclass
class GameConfig:
    """Resolved load order and data sources, all in ascending priority."""
    path: Path
    plugins: list[Path] = field(default_factory=list)
    scripts: list[Path] = field(default_factory=list)   # .omwscripts content entries
    data_dirs: list[Path] = field(default_factory=list)
    archives: list[Path] = field(default_factory=list)

    def data_files(self) -> DataFiles:
        return DataFiles(self.data_dirs, self.archives)


@dataclass
class _CfgFile:
    """Settings read from one openmw.cfg, before cross-file merging."""
    path: Path
    data: list[Path] = field(default_factory=list)
    data_local: list[Path] = field(default_factory=list)
    user_data: list[Path] = field(default_factory=list)
    archives: list[str] = field(default_factory=list)
    content: list[str] = field(default_factory=list)
    configs: list[Path] = field(default_factory=list)
    replace: set[str] = field(default_factory=set)


def candidate_config_dirs() -> list[Path]:
    """Directories that usually hold the user's openmw.cfg, most specific first."""
    home = Path.home()
    dirs = [Path.cwd()]
    if sys.platform == "win32":
        dirs.append(home / "Documents" / "My Games" / "OpenMW")
    elif sys.platform == "darwin":
        dirs.append(home / "Library" / "Preferences" / "openmw")
    else:
        dirs.append(Path(os.environ.get("XDG_CONFIG_HOME") or home / ".config") / "openmw")
    return dirs


def find_config(path: Path | None = None) -> Path:
    """Resolve an explicit file or directory, else search the usual locations."""
    if path is not None:
        path = Path(path)
        if path.is_dir():
            path = path / OPENMW_CFG
        if not path.is_file():
            raise FileNotFoundError(f"configuration not found: {path}")
        return path
    for directory in candidate_config_dirs():
        candidate = directory / OPENMW_CFG
        if candidate.is_file():
            return candidate
    raise FileNotFoundError(f"no {OPENMW_CFG} found; pass its path explicitly")


def expand_tokens(value: str, local_dir: Path) -> str:
    """Replace ?local?, ?userconfig?, ?userdata? and ?global? path tokens."""
    home = Path.home()
    config_home = Path(os.environ.get("XDG_CONFIG_HOME") or home / ".config")
    data_home = Path(os.environ.get("XDG_DATA_HOME") or home / ".local" / "share")
    if sys.platform == "win32":
        user_config = user_data = home / "Documents" / "My Games" / "OpenMW"
        global_dir = Path("C:/Program Files/OpenMW")
    elif sys.platform == "darwin":
        user_config = home / "Library" / "Preferences" / "openmw"
        user_data = home / "Library" / "Application Support" / "openmw"
        global_dir = Path("/Library/Application Support")
    else:
        user_config = config_home / "openmw"
        user_data = data_home / "openmw"
        global_dir = Path("/usr/share/games")

    tokens = {
        "?local?": local_dir,
        "?userconfig?": user_config,
        "?userdata?": user_data,
        "?global?": global_dir,
    }
    for token, replacement in tokens.items():
        if value.startswith(token):
            rest = value[len(token):].lstrip("/\\")
            return str(replacement / rest) if rest else str(replacement)
    return value


def _unquote(value: str) -> str:
    # openmw.cfg quoted paths escape '"' and '&' with a leading '&'
    if len(value) >= 2 and value[0] == value[-1] == '"':
        out = []
        chars = iter(value[1:-1])
        for ch in chars:
            out.append(next(chars, "") if ch == "&" else ch)
        return "".join(out)
    return value


def _resolve_dir(value: str, cfg_dir: Path, local_dir: Path) -> Path:
    path = Path(expand_tokens(_unquote(value), local_dir)).expanduser()
    if not path.is_absolute():
        path = cfg_dir / path
    return Path(os.path.normpath(path))


def _read_cfg(path: Path, local_dir: Path) -> _CfgFile:
    cfg = _CfgFile(path=path)
    cfg_dir = path.parent
    logger.debug("reading %s", path)
    for line_no, raw in enumerate(path.read_text(encoding="utf-8", errors="replace").splitlines(), 1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            logger.warning("%s:%d: ignoring line without '='", path, line_no)
            continue
        key = key.strip().lower()
        value = value.strip()
        if key == "config":
            nested = _resolve_dir(value, cfg_dir, local_dir) / OPENMW_CFG
            if nested.is_file():
                cfg.configs.append(nested)
            else:
                logger.debug("%s: nested config %s does not exist", path, nested)
        elif key == "replace":
            cfg.replace.update(v.strip() for v in value.split(","))
        elif key == "data":
            cfg.data.append(_resolve_dir(value, cfg_dir, local_dir))
        elif key == "data-local":
            cfg.data_local.append(_resolve_dir(value, cfg_dir, local_dir))
        elif key == "user-data":
            cfg.user_data.append(_resolve_dir(value, cfg_dir, local_dir))
        elif key == "fallback-archive":
            cfg.archives.append(_unquote(value))
        elif key == "content":
            cfg.content.append(_unquote(value))
    return cfg


def _load_recursive(path: Path, local_dir: Path, loaded: list[_CfgFile], visited: set[Path]) -> None:
    path = path.resolve()
    if path in visited:
        return
    visited.add(path)
    cfg = _read_cfg(path, local_dir)
    # Nested configs are higher priority; replace=config discards everything before
    if "config" in cfg.replace:
        loaded.clear()
    loaded.append(cfg)
    for nested in cfg.configs:
        _load_recursive(nested, local_dir, loaded, visited)


def resolve_in_dirs(name: str, data_dirs: list[Path], fallback: Path) -> Path:
    """Locate ``name`` in the highest priority data dir that has it."""
    lowered = name.lower()
    for data_dir in reversed(data_dirs):
        candidate = data_dir / name
        if candidate.is_file():
            return candidate
        if data_dir.is_dir():
            for child in data_dir.iterdir():
                if child.name.lower() == lowered and child.is_file():
                    return child
    logger.debug("%s not found in any data directory", name)
    return fallback / name


def load_openmw_config(path: Path | None = None) -> GameConfig:
    """Read openmw.cfg and every config it pulls in, merged by priority."""
    root = find_config(path)
    loaded: list[_CfgFile] = []
    _load_recursive(root, root.parent.resolve(), loaded, set())

    data_dirs: list[Path] = []
    for attr in ("data", "user_data", "data_local"):
        for cfg in loaded:
            data_dirs.extend(getattr(cfg, attr))

    config = GameConfig(path=root, data_dirs=data_dirs)
    fallback = root.parent
    for cfg in loaded:
        for name in cfg.archives:
            config.archives.append(resolve_in_dirs(name, data_dirs, fallback))
        for name in cfg.content:
            ext = Path(name).suffix.lower()
            if ext not in CONTENT_EXTENSIONS:
                logger.debug("skipping content %s", name)
            elif ext == ".omwscripts":
                config.scripts.append(resolve_in_dirs(name, data_dirs, fallback))
            else:
                config.plugins.append(resolve_in_dirs(name, data_dirs, fallback))
    logger.info("%s: %d plugins, %d data dirs, %d archives",
                root, len(config.plugins), len(config.data_dirs), len(config.archives))
    return config


def load_morrowind_ini(path: Path) -> GameConfig:
    """Read GameFile and Archive entries from morrowind.ini.

    Plugins live in the "Data Files" directory beside the ini; masters are
    ordered before plugins, and entries whose file is missing are skipped.
    """
    path = Path(path)
    data_dir = path.parent / "Data Files"
    masters: list[Path] = []
    plugins: list[Path] = []
    archives: list[Path] = []
    default_archive = data_dir / "Morrowind.bsa"
    if default_archive.is_file():
        archives.append(default_archive)

    for raw in path.read_text(encoding="cp1252", errors="replace").splitlines():
        line = raw.strip()
        if not line or line.startswith(";") or line.startswith("["):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip().lower()
        value = value.strip()
        if key.startswith("gamefile"):
            plugin = data_dir / value
            if not plugin.is_file():
                logger.warning("%s: %s does not exist", path, plugin)
                continue
            ext = plugin.suffix.lower()
            if ext == ".esm":
                masters.append(plugin)
            elif ext == ".esp":
                plugins.append(plugin)
        elif key.startswith("archive"):
            archive = data_dir / value
            if archive.is_file() and archive not in archives:
                archives.append(archive)

    return GameConfig(path=path, plugins=masters + plugins, data_dirs=[data_dir], archives=archives)


def load_game_config(path: Path | None = None) -> GameConfig:
    """Dispatch on file name: morrowind.ini, else openmw.cfg."""
    if path is not None and Path(path).suffix.lower() == ".ini":
        return load_morrowind_ini(Path(path))
    return load_openmw_config(path)
