"""Named profiles pointing at a game configuration (openmw.cfg or morrowind.ini)."""
from __future__ import annotations

import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import click

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

APP_NAME = "tes3pack"

_BARE_KEY_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def _toml_string(value: str) -> str:
    # Literal strings keep Windows backslashes as-is but cannot hold a quote
    if "'" not in value and "\n" not in value:
        return f"'{value}'"
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


@dataclass
class Profile:
    name: str
    cfg: Path

    @property
    def kind(self) -> str:
        return "morrowind.ini" if self.cfg.suffix.lower() == ".ini" else "openmw.cfg"


@dataclass
class ProfileStore:
    """Profiles saved in the per-user ``config.toml``."""
    default_profile: Optional[str] = None
    profiles: dict[str, Profile] = field(default_factory=dict)

    @staticmethod
    def default_path() -> Path:
        return Path(click.get_app_dir(APP_NAME)) / "config.toml"

    @classmethod
    def load(cls, path: Path | None = None) -> "ProfileStore":
        """Read the store; a missing file is an empty store."""
        path = path or cls.default_path()
        if not path.exists():
            return cls()
        with open(path, "rb") as f:
            data = tomllib.load(f)
        store = cls(default_profile=data.get("default_profile"))
        for name, entry in data.get("profiles", {}).items():
            store.profiles[name] = Profile(name, Path(entry["cfg"]))
        return store

    def save(self, path: Path | None = None) -> Path:
        path = path or self.default_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        out = []
        if self.default_profile:
            out.append(f"default_profile = {_toml_string(self.default_profile)}\n")
        for profile in self.profiles.values():
            out.append(f"\n[profiles.{profile.name}]\ncfg = {_toml_string(str(profile.cfg))}\n")
        path.write_text("".join(out), encoding="utf-8")
        return path

    def add(self, profile: Profile, make_default: bool = False) -> None:
        self.profiles[profile.name] = profile
        if make_default or self.default_profile not in self.profiles:
            self.default_profile = profile.name

    def get(self, name: Optional[str] = None) -> Profile:
        """Look up a profile by name, or the default one."""
        name = name or self.default_profile
        if name is None:
            raise click.UsageError(
                "No game configuration given. Either:\n"
                f"  1. Run '{APP_NAME} init' to set up a profile\n"
                "  2. Pass --cfg <openmw.cfg or morrowind.ini>\n"
                "  3. Pass --profile <name> to pick a saved profile"
            )
        try:
            return self.profiles[name]
        except KeyError:
            known = ", ".join(self.profiles) or "(none)"
            raise click.UsageError(f"Unknown profile '{name}'. Known profiles: {known}") from None

    def describe(self) -> list[str]:
        return [
            f"  {name}: {p.cfg} [{p.kind}]" + (" (default)" if name == self.default_profile else "")
            for name, p in self.profiles.items()
        ]


def is_valid_profile_name(name: str) -> bool:
    """Profile names become TOML bare keys."""
    return bool(_BARE_KEY_RE.match(name))


def resolve_cfg(cfg: Path | None, profile_name: str | None) -> Path:
    """Pick the game configuration: --cfg, else --profile, else the default profile."""
    if cfg is None:
        profile = ProfileStore.load().get(profile_name)
        cfg = profile.cfg
        if not cfg.exists():
            raise click.UsageError(
                f"{profile.kind} for profile '{profile.name}' is gone: {cfg}\n"
                f"Run '{APP_NAME} init' to update it."
            )
    elif not cfg.exists():
        raise click.UsageError(f"Configuration file not found: {cfg}")
    return cfg
