"""libgmc.platform

Maps a (platform, version) pair to the chunk id a model package is stored
under, and a platform to the layout of its material tables.
"""

from __future__ import annotations

import struct
from enum import Enum, IntEnum

from .errors import UnsupportedPlatformVersion


class PlatformType(IntEnum):
    PC = 0
    PS2 = 2
    XBOX = 3
    PSP = 5
    PS3 = 9
    XBOX360 = 10
    WII = 11
    ANY = -1


class MaterialPackageType(Enum):
    UNKNOWN = 0
    PC = 1
    XBOX = 2
    PS2 = 3


MGX_MODEL_PACKAGE_PS2 = 0x32434D47   # 'GMC2'
MGX_MODEL_PACKAGE_XBOX = 0x4258444D  # 'MDXB'
MGX_MODEL_PACKAGE_PC = 0x4350444D    # 'MDPC'
MGX_MODEL_PACKAGE_XN = 0x4E58444D    # 'MDXN'
MGX_MODEL_PACKAGE_WII = 0x4957444D   # 'MDWI'

MGX_GENERIC = 0x21505453

_PC_CHUNK_IDS = {
    1: MGX_MODEL_PACKAGE_XN,
    6: MGX_MODEL_PACKAGE_PC,
}


def fourcc(value: int) -> str:
    return struct.pack("<I", value & 0xFFFFFFFF).decode("ascii", errors="replace")


def resolve_chunk_id(platform: PlatformType, version: int) -> int:
    if platform == PlatformType.PS2:
        return MGX_MODEL_PACKAGE_PS2
    if platform == PlatformType.XBOX:
        return MGX_MODEL_PACKAGE_XBOX
    if platform == PlatformType.PC:
        return _PC_CHUNK_IDS.get(version, MGX_GENERIC)
    return MGX_GENERIC


def material_package_type(platform: PlatformType) -> MaterialPackageType:
    return {
        PlatformType.PC: MaterialPackageType.PC,
        PlatformType.XBOX: MaterialPackageType.XBOX,
        PlatformType.PS2: MaterialPackageType.PS2,
    }.get(platform, MaterialPackageType.UNKNOWN)


def check_chunk_id(buffer, platform: PlatformType, version: int) -> int:
    """Raise UnsupportedPlatformVersion unless the buffer's context matches."""
    expected = resolve_chunk_id(platform, version)
    if buffer.context != expected:
        raise UnsupportedPlatformVersion(platform, version, expected, buffer.context)
    return expected
