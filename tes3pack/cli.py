"""Click CLI for packing, extracting and inspecting TES3 plugins."""
from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Optional

import click

from tes3pack.bsa.reader import BSAError
from tes3pack.config import GameConfig
from tes3pack.esm.errors import EsmError
from tes3pack.profiles import APP_NAME, Profile, ProfileStore, is_valid_profile_name, resolve_cfg
from tes3pack.scripts.omwscripts import ScriptsError

# Failures that are the input's fault, reported without a traceback
_INPUT_ERRORS = (EsmError, BSAError, ScriptsError, OSError)

_CONFIG_SUFFIXES = (".cfg", ".ini")


class Context:
    """Holds the game configuration resolved from --cfg / --profile / config."""

    def __init__(self, cfg: Path | None = None, profile: str | None = None):
        self._explicit_cfg = cfg
        self._profile_name = profile
        self._game_config: GameConfig | None = None

    @property
    def cfg(self) -> Path:
        return resolve_cfg(self._explicit_cfg, self._profile_name)

    @property
    def game_config(self) -> GameConfig:
        if self._game_config is None:
            from tes3pack.config import load_game_config
            try:
                self._game_config = load_game_config(self.cfg)
            except _INPUT_ERRORS as e:
                raise click.ClickException(f"Couldn't read {self.cfg}: {e}") from e
        return self._game_config


pass_ctx = click.make_pass_decorator(Context)


def _setup_logging(verbose: int):
    level = max(logging.WARNING - 10 * verbose, logging.DEBUG)
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
    logging.getLogger("tes3pack").setLevel(level)


def _parse_tags(ctx, param, value: Optional[str]) -> Optional[set[str]]:
    if not value:
        return None
    tags = {tok.strip().upper() for tok in value.split(",") if tok.strip()}
    for tag in tags:
        if len(tag) != 4:
            raise click.BadParameter(f"{tag!r} is not a 4-character tag")
    return tags


def _parse_filter(ctx, param, value: Optional[str]) -> Optional[tuple[str, bytes]]:
    """TAG=TEXT, TAG=0xHEX or a bare TAG."""
    if not value:
        return None
    tag, _, needle = value.partition("=")
    tag = tag.strip().upper()
    if len(tag) != 4:
        raise click.BadParameter(f"{tag!r} is not a 4-character tag")
    if needle.startswith("0x"):
        try:
            return tag, bytes.fromhex(needle[2:])
        except ValueError:
            raise click.BadParameter(f"{needle!r} is not hex") from None
    return tag, needle.encode("cp1252", errors="surrogateescape")


def _backup(path: Path) -> Path:
    """Copy an existing file to a new temporary file and return its path."""
    fd, name = tempfile.mkstemp(prefix=f"{path.name}.", suffix=".bak")
    with open(fd, "wb") as out, open(path, "rb") as src:
        shutil.copyfileobj(src, out)
    return Path(name)


def hex_rows(data: bytes, width: int) -> list[str]:
    """Render bytes as pairs of rows: printable characters above hex values."""
    per_line = min(max(width // 3, 4), 32)
    rows = []
    for i in range(0, len(data), per_line):
        chunk = data[i:i + per_line]
        rows.append("".join(f" {chr(b)} " if 0x20 <= b < 0x7F else " . " for b in chunk))
        rows.append("".join(f"{b:02x} " for b in chunk))
    return rows


@click.group()
@click.option(
    "--cfg", required=False, default=None,
    type=click.Path(exists=False, path_type=Path),
    help="Path to openmw.cfg or morrowind.ini (optional if profiles configured)",
)
@click.option(
    "--profile", "-p", default=None, type=str,
    help=f"Named profile to use (from {APP_NAME} init)",
)
@click.option("--verbose", "-v", count=True, help="More logging; repeat for debug output")
@click.version_option(package_name="tes3pack")
@click.pass_context
def cli(ctx, cfg: Optional[Path], profile: Optional[str], verbose: int):
    """tes3pack - TES3 plugin toolkit for OpenMW mods.

    Pack .omwscripts files into .omwaddon plugins and back, dump records,
    and pull files out of the game's data directories and BSA archives.
    """
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj = Context(cfg=cfg, profile=profile)


@cli.command()
def init():
    """Set up config profiles for game configuration paths (interactive)."""
    from tes3pack.config import find_config

    store = ProfileStore.load()

    if store.profiles:
        click.echo("Current profiles:")
        click.echo("\n".join(store.describe()))
        click.echo()
        if not click.confirm("Start over with an empty profile list?", default=False):
            click.echo("Aborted.")
            return
        store = ProfileStore()

    click.echo(f"Each {APP_NAME} profile names one openmw.cfg or morrowind.ini.\n")

    while True:
        name = click.prompt("Profile name", default=None if store.profiles else "default").strip()
        if not is_valid_profile_name(name):
            click.echo(f"'{name}' is not a valid profile name (letters, digits, '-' and '_' only).")
            continue

        while True:
            entered = Path(click.prompt("openmw.cfg (file or directory) or morrowind.ini").strip().strip("\"'"))
            if entered.suffix.lower() == ".ini" and entered.is_file():
                cfg_path = entered
                break
            try:
                cfg_path = find_config(entered)
                break
            except FileNotFoundError:
                click.echo(f"No configuration found at {entered}")

        make_default = bool(store.profiles) and click.confirm(f"Make '{name}' the default?", default=False)
        store.add(Profile(name=name, cfg=cfg_path), make_default=make_default)

        if not click.confirm("\nAdd another profile?", default=False):
            break
        click.echo()

    click.echo(f"\nSaved {len(store.profiles)} profile(s) to {store.save()}")
    click.echo("\n".join(store.describe()))
    click.echo(f"\nTry: {APP_NAME} read -r LUAL")


@cli.command()
@click.argument("input_path", metavar="INPUT", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path),
              help="Output plugin (default: INPUT with an .omwaddon extension)")
def pack(input_path: Path, output: Optional[Path]):
    """Package a .omwscripts file into an .omwaddon (or update an existing one)."""
    from tes3pack.esm.constants import REC_LUAL
    from tes3pack.esm.lua import LuaScripts
    from tes3pack.esm.reader import parse_plugin_file
    from tes3pack.esm.records import write_records
    from tes3pack.esm.tes3 import new_tes3_record, refresh_record_count
    from tes3pack.scripts.omwscripts import parse_scripts

    if output is None:
        output = input_path.with_suffix(".omwaddon")

    try:
        scripts = parse_scripts(input_path.read_text(encoding="utf-8"))
        if not scripts:
            raise click.ClickException(f"No scripts found in {input_path}")

        if output.exists():
            backup = _backup(output)
            click.echo(f"Backed up {output} -> {backup}")
            records = parse_plugin_file(output)
        else:
            records = [new_tes3_record(description=f"Made with {APP_NAME}")]

        # The first LUAL keeps its place and flags; any others are merged away
        lual = LuaScripts(scripts=scripts)
        packed = []
        for rec in records:
            if rec.tag != REC_LUAL:
                packed.append(rec)
            elif lual is not None:
                lual.flags = rec.flags
                packed.append(lual.to_record())
                lual = None
        if lual is not None:
            packed.append(lual.to_record())
        refresh_record_count(packed)

        click.echo(f"Packing {input_path} -> {output}")
        with open(output, "wb") as f:
            count = write_records(f, packed)
    except _INPUT_ERRORS as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Done: {len(scripts)} script(s), {count} record(s) written to {output}")


@cli.command()
@click.argument("input_path", metavar="INPUT", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path),
              help="Output file (default: INPUT with an .omwscripts extension)")
def extract(input_path: Path, output: Optional[Path]):
    """Extract the Lua scripts of a plugin into a .omwscripts file."""
    from tes3pack.esm.constants import REC_LUAL
    from tes3pack.esm.decoders import decode_records
    from tes3pack.esm.reader import parse_plugin_file
    from tes3pack.scripts.omwscripts import unpackage

    if output is None:
        output = input_path.with_suffix(".omwscripts")

    try:
        lua_records = decode_records(parse_plugin_file(input_path), REC_LUAL)
        if not lua_records:
            raise click.ClickException(f"No LUAL record in {input_path}")
        text = "".join(unpackage(lual) for lual in lua_records)
        output.write_text(text, encoding="utf-8")
    except _INPUT_ERRORS as e:
        raise click.ClickException(str(e)) from e

    count = sum(len(lual.scripts) for lual in lua_records)
    click.echo(f"Extracted {count} script(s) to {output}")


@cli.command()
@click.argument("input_path", metavar="[INPUT]", required=False,
                type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--record", "-r", "record_tags", callback=_parse_tags,
              help="Only records of these types (comma separated, e.g. CELL,LAND)")
@click.option("--subrecord", "-s", "subrecord_tags", callback=_parse_tags,
              help="Only subrecords of these types (comma separated)")
@click.option("--filter", "-f", "match", callback=_parse_filter,
              help="Only records with a TAG subrecord containing TEXT, e.g. 'NAME=Balmora'. "
                   "Prefix with 0x for hex.")
@click.option("--format", "fmt", type=click.Choice(["hex", "json"]), default="hex", show_default=True)
@pass_ctx
def read(ctx: Context, input_path: Optional[Path], record_tags: Optional[set[str]],
         subrecord_tags: Optional[set[str]], match: Optional[tuple[str, bytes]], fmt: str):
    """Display the records of a plugin, or of every plugin in a configuration."""
    from tes3pack.esm.reader import PluginReader

    if input_path is None:
        plugins = ctx.game_config.plugins
    elif input_path.suffix.lower() in _CONFIG_SUFFIXES:
        from tes3pack.config import load_game_config
        try:
            plugins = load_game_config(input_path).plugins
        except _INPUT_ERRORS as e:
            raise click.ClickException(f"{input_path} couldn't be parsed: {e}") from e
    else:
        plugins = [input_path]

    def wanted(rec) -> bool:
        if record_tags is not None and rec.tag not in record_tags:
            return False
        if match is None:
            return True
        tag, needle = match
        return any(sub.tag == tag and needle in sub.data for sub in rec.subrecords)

    width = shutil.get_terminal_size((120, 24)).columns
    exported = []
    for plugin in plugins:
        try:
            records = [rec for rec in PluginReader(plugin).iter_records() if wanted(rec)]
        except _INPUT_ERRORS as e:
            raise click.ClickException(f"Failed parsing {plugin}: {e}") from e

        if fmt == "json":
            from tes3pack.export.json_export import record_to_dict
            for rec in records:
                try:
                    entry = record_to_dict(rec)
                except _INPUT_ERRORS as e:
                    raise click.ClickException(
                        f"Failed decoding {rec.tag} in {plugin} @ {rec.plugin_offset}: {e}"
                    ) from e
                if subrecord_tags is not None:
                    entry["subrecords"] = [s for s in entry["subrecords"] if s["tag"] in subrecord_tags]
                exported.append(entry)
            continue

        for rec in records:
            header_printed = False
            for sub in rec.subrecords:
                if subrecord_tags is not None and sub.tag not in subrecord_tags:
                    continue
                if not header_printed:
                    click.echo(f"\n{rec.tag}: ({plugin.name} @ {rec.plugin_offset})")
                    header_printed = True
                click.echo(f"  {sub.tag}:")
                for row in hex_rows(sub.data, width):
                    click.echo(row)

    if fmt == "json":
        import json
        click.echo(json.dumps(exported, indent=2))
    else:
        click.echo(f"\nDone reading {len(plugins)} plugin(s)")


@cli.command()
@click.argument("name")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path),
              help="Output file (default: the file name in the current directory)")
@pass_ctx
def fetch(ctx: Context, name: str, output: Optional[Path]):
    """Copy one game file out of the data directories or BSA archives."""
    data_files = ctx.game_config.data_files()
    if output is None:
        output = Path(name.replace("\\", "/").rsplit("/", 1)[-1])
    try:
        data = data_files.read_file(name)
        output.write_bytes(data)
    except _INPUT_ERRORS as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Wrote {len(data):,} bytes to {output}")


@cli.command()
@click.argument("input_path", metavar="INPUT", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def terrain(input_path: Path):
    """Show the elevation range of every LAND record in a plugin."""
    from tes3pack.esm.constants import REC_LAND
    from tes3pack.esm.decoders import decode_records
    from tes3pack.esm.reader import parse_plugin_file

    try:
        lands = decode_records(parse_plugin_file(input_path), REC_LAND)
    except _INPUT_ERRORS as e:
        raise click.ClickException(str(e)) from e

    if not lands:
        click.echo("No LAND records found.")
        return

    click.echo(f"{'Cell':<14} {'Min':>10} {'Max':>10}")
    click.echo("-" * 36)
    for land in lands:
        cell = f"({land.grid.grid_x}, {land.grid.grid_y})" if land.grid else "(?)"
        elevation = land.elevation_range()
        if elevation is None:
            click.echo(f"{cell:<14} {'no heights':>21}")
        else:
            low, high = elevation
            click.echo(f"{cell:<14} {low:>10.1f} {high:>10.1f}")
    click.echo(f"\n{len(lands)} LAND record(s)")
