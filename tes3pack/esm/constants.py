"""TES3 plugin format constants, tags, and sizes."""

# Text fields are Windows-1252; surrogateescape keeps undefined bytes intact
ENCODING = "cp1252"
ENCODING_ERRORS = "surrogateescape"

RECORD_HEADER_SIZE = 16     # tag(4) + size(4) + reserved(4) + flags(4)
SUBRECORD_HEADER_SIZE = 8   # tag(4) + length(4)
TAG_SIZE = 4

# HEDR layout
HEDR_SIZE = 300
HEDR_NAME_SIZE = 32
HEDR_DESCRIPTION_SIZE = 256
HEDR_VERSION = 1.3          # 1.2 for Morrowind, 1.3 for Tribunal/Bloodmoon

# Record tags handled by structured parsers
REC_TES3 = "TES3"
REC_CELL = "CELL"
REC_LAND = "LAND"
REC_LTEX = "LTEX"
REC_LUAL = "LUAL"           # Lua script configuration (content files)

# Terrain
LAND_SIZE = 65              # vertices per side for heights, normals, colors
LAND_TEXTURE_SIZE = 16
LAND_GLOBAL_MAP_SIZE = 9
LAND_HEIGHT_SCALE = 8.0     # world units per height step
VHGT_TRAILER_SIZE = 3

# LUAF flags
LUA_FLAG_GLOBAL = 1 << 0
LUA_FLAG_CUSTOM = 1 << 1
LUA_FLAG_PLAYER = 1 << 2
LUA_FLAG_MENU = 1 << 4

# Plugin file extensions
PLUGIN_EXTENSIONS = frozenset({".esm", ".esp", ".omwaddon", ".omwgame"})
