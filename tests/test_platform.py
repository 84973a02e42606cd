import pytest

from conftest import as_buffer
from libgmc.errors import UnsupportedPlatformVersion
from libgmc.platform import (
    MGX_GENERIC,
    MaterialPackageType,
    PlatformType,
    check_chunk_id,
    fourcc,
    material_package_type,
    resolve_chunk_id,
)


@pytest.mark.parametrize(
    "platform, version, expected",
    [
        (PlatformType.PS2, 0, 0x32434D47),
        (PlatformType.PS2, 6, 0x32434D47),
        (PlatformType.XBOX, 0, 0x4258444D),
        (PlatformType.PC, 1, 0x4E58444D),
        (PlatformType.PC, 6, 0x4350444D),
        (PlatformType.PC, 2, MGX_GENERIC),
        (PlatformType.WII, 0, MGX_GENERIC),
        (PlatformType.PSP, 0, MGX_GENERIC),
        (PlatformType.ANY, 6, MGX_GENERIC),
    ],
)
def test_resolve_chunk_id(platform, version, expected):
    assert resolve_chunk_id(platform, version) == expected


def test_pc_versions_differ():
    assert resolve_chunk_id(PlatformType.PC, 6) != resolve_chunk_id(PlatformType.PC, 1)
    assert fourcc(resolve_chunk_id(PlatformType.PC, 6)) == "MDPC"
    assert fourcc(MGX_GENERIC) == "STP!"


def test_material_package_type():
    assert material_package_type(PlatformType.PC) == MaterialPackageType.PC
    assert material_package_type(PlatformType.XBOX) == MaterialPackageType.XBOX
    assert material_package_type(PlatformType.PS2) == MaterialPackageType.PS2
    for p in (PlatformType.WII, PlatformType.PSP, PlatformType.PS3, PlatformType.XBOX360, PlatformType.ANY):
        assert material_package_type(p) == MaterialPackageType.UNKNOWN


def test_check_chunk_id_mismatch():
    buf = as_buffer(0x32434D47, b"")
    assert check_chunk_id(buf, PlatformType.PS2, 0) == 0x32434D47
    with pytest.raises(UnsupportedPlatformVersion) as e:
        check_chunk_id(buf, PlatformType.PC, 6)
    assert e.value.expected == 0x4350444D
    assert e.value.found == 0x32434D47
