"""libgmc.packages

Model package decoder.

Every platform stores the same header and model hierarchy; they differ in
the payload magic, the sub model record, whether vertex/index buffers are
present, and the layout of the texture table. Those differences are kept in
a closed table of PackageLayout records, one per (platform, version) the
engine ships, and dispatched by load_model_package().

Header (little-endian, offsets relative to the package payload):

  0x00 magic          0x04 uid            0x08 version        0x0C flags
  0x10 model count    0x14 models offset
  0x18 vertex buffer count                0x1C vertex buffers offset
  0x20 index count    0x24 indices offset
  0x28 material count 0x2C materials offset
  0x30 substance count                    0x34 substances offset
  0x38 texture count  0x3C textures offset
  0x40 texture data offset                0x44 texture data size

Sub model data buffers are kept verbatim; PS2 ones hold a VIF stream that
libgmc.vif decodes on demand.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Tuple

from .binreader import BinReader
from .errors import BadMagic, DecoderNotImplemented, MalformedContainer, UnsupportedPlatformVersion
from .model import (
    IndexBuffer,
    Lod,
    LodInstance,
    LookupStatus,
    Material,
    MaterialHandle,
    MaterialLookup,
    Model,
    ModelPackage,
    SubModel,
    Substance,
    Texture,
    VertexBuffer,
    VertexType,
)
from .platform import (
    MGX_MODEL_PACKAGE_PC,
    MGX_MODEL_PACKAGE_PS2,
    MGX_MODEL_PACKAGE_WII,
    MGX_MODEL_PACKAGE_XBOX,
    MGX_MODEL_PACKAGE_XN,
    MaterialPackageType,
    PlatformType,
    check_chunk_id,
    fourcc,
    material_package_type,
)

log = logging.getLogger(__name__)

HEADER_SIZE = 0x48
MODEL_SIZE = 48
LOD_SIZE = 16
LOD_INSTANCE_SIZE = 16
VERTEX_BUFFER_SIZE = 16
MATERIAL_SIZE = 16
SUBSTANCE_SIZE = 16

FLAGS_SENTINEL = 0xBADC0DE


def compat_flags(version: int, flags: int) -> int:
    # Packages written by one revision of the source tool carry no flags under
    # version 9; the engine reads them as this sentinel.
    if flags == 0 and version == 9:
        return FLAGS_SENTINEL
    return flags


# -----------------------------
# Sub model records
# -----------------------------

def _read_sub_model_head(b: BinReader) -> SubModel:
    return SubModel(
        type=b.u16(),
        flags=b.u16(),
        unknown1=b.u16(),
        unknown2=b.u16(),
        texture_id=b.u16(),
        texture_source=b.u16(),
    )


def _read_sub_model_ps2(b: BinReader) -> SubModel:
    sub = _read_sub_model_head(b)
    data_offset = b.u32()
    data_size = b.u32()

    if sub.has_vector_data:
        sub.v1 = b.vec3()
        sub.v2 = b.vec3()
    if sub.has_transform:
        m = b.floats(16)
        sub.transform = tuple(tuple(m[r * 4 : r * 4 + 4]) for r in range(4))

    sub.model_data = bytes(b.slice(data_offset, data_size))
    return sub


def _read_sub_model_pc(b: BinReader) -> SubModel:
    sub = _read_sub_model_head(b)
    sub.vertex_base_offset = b.u32()
    sub.vertex_offset = b.u32()
    sub.vertex_count = b.u32()
    sub.index_offset = b.u32()
    sub.index_count = b.u32()
    return sub


# -----------------------------
# Texture records
# -----------------------------

def _read_texture_pc(b: BinReader) -> Texture:
    return Texture(
        uid=b.u32(),
        hash=b.u32(),
        data_offset=b.u32(),
        data_size=b.u32(),
        type=b.u16(),
        flags=b.u16(),
        width=b.u16(),
        height=b.u16(),
    )


def _read_texture_xbox(b: BinReader) -> Texture:
    return Texture(
        uid=b.u32(),
        hash=b.u32(),
        data_offset=b.u32(),
        data_size=b.u32(),
        format=b.u32(),
        width=b.u16(),
        height=b.u16(),
    )


def _read_texture_ps2(b: BinReader) -> Texture:
    tex = Texture(reserved=b.u64())
    tex.type = b.u8()
    modes = b.u8()
    tex.flags = b.u16()
    tex.width = b.u16()
    tex.height = b.u16()
    tex.unknown1 = b.u32()
    tex.data_offset = b.u32()
    tex.unknown2 = b.u32()
    tex.cluts = b.u32s(modes)
    return tex


TEXTURE_READERS: Dict[MaterialPackageType, Callable[[BinReader], Texture]] = {
    MaterialPackageType.PC: _read_texture_pc,
    MaterialPackageType.XBOX: _read_texture_xbox,
    MaterialPackageType.PS2: _read_texture_ps2,
}


# -----------------------------
# Platform variants
# -----------------------------

@dataclass(frozen=True)
class PackageLayout:
    platform: PlatformType
    version: Optional[int]  # None: header version is not checked
    magic: int
    read_sub_model: Callable[[BinReader], SubModel]
    has_vertex_data: bool = True
    override_flags: Callable[[int, int], int] = compat_flags

    @property
    def material_package_type(self) -> MaterialPackageType:
        return material_package_type(self.platform)


LAYOUTS: Dict[Tuple[PlatformType, Optional[int]], PackageLayout] = {
    (PlatformType.PS2, None): PackageLayout(
        PlatformType.PS2, None, MGX_MODEL_PACKAGE_PS2, _read_sub_model_ps2, has_vertex_data=False
    ),
    (PlatformType.XBOX, None): PackageLayout(
        PlatformType.XBOX, None, MGX_MODEL_PACKAGE_XBOX, _read_sub_model_pc
    ),
    (PlatformType.PC, 1): PackageLayout(PlatformType.PC, 1, MGX_MODEL_PACKAGE_XN, _read_sub_model_pc),
    (PlatformType.PC, 6): PackageLayout(PlatformType.PC, 6, MGX_MODEL_PACKAGE_PC, _read_sub_model_pc),
    (PlatformType.WII, None): PackageLayout(
        PlatformType.WII, None, MGX_MODEL_PACKAGE_WII, _read_sub_model_pc
    ),
}


def get_layout(platform: PlatformType, version: int) -> PackageLayout:
    layout = LAYOUTS.get((platform, version)) or LAYOUTS.get((platform, None))
    if layout is None:
        raise DecoderNotImplemented(
            f"No model package decoder for {PlatformType(platform).name} version {version}"
        )
    return layout


# -----------------------------
# Tables
# -----------------------------

def _read_vertex_buffers(b: BinReader, count: int, offset: int) -> list:
    out = []
    for i in range(count):
        b.seek(offset + i * VERTEX_BUFFER_SIZE)
        n = b.u32()
        stride = b.u32()
        data_offset = b.u32()
        try:
            vtype = VertexType(stride)
        except ValueError:
            raise MalformedContainer(
                f"Vertex buffer {i} has unknown stride 0x{stride:X}", b.base + offset + i * VERTEX_BUFFER_SIZE
            ) from None
        out.append(VertexBuffer(vertex_type=vtype, count=n, data=bytes(b.slice(data_offset, n * stride))))
    return out


def _read_materials(b: BinReader, pkg: ModelPackage, counts: dict) -> None:
    n_mat, mat_ofs = counts["materials"]
    n_sub, sub_ofs = counts["substances"]
    n_tex, tex_ofs = counts["textures"]

    mtype = pkg.material_package_type
    read_texture = TEXTURE_READERS.get(mtype)
    if read_texture is None:
        if n_mat or n_sub or n_tex:
            log.warning(
                "Not interpreting %d materials of %s package 0x%X: unknown material layout",
                n_mat, pkg.platform.name, pkg.uid,
            )
        return

    # texture records may be variable length, so read them back to back
    b.seek(tex_ofs)
    for _ in range(n_tex):
        tex = read_texture(b)
        tex.buffer = pkg.texture_data
        pkg.textures.append(tex)

    for i in range(n_sub):
        b.seek(sub_ofs + i * SUBSTANCE_SIZE)
        sub = Substance(flags=b.u32(), mode=b.u8(), type=b.u8())
        b.skip(2)
        count = b.u32()
        refs_ofs = b.u32()
        b.seek(refs_ofs)
        sub.textures = [_ref(pkg.textures, idx, "texture", b) for idx in b.u32s(count)]
        pkg.substances.append(sub)

    for i in range(n_mat):
        b.seek(mat_ofs + i * MATERIAL_SIZE)
        count = b.u32()
        refs_ofs = b.u32()
        mat = Material(flags=b.u16())
        b.skip(2)
        mat.animation_speed = b.f32()
        b.seek(refs_ofs)
        mat.substances = [_ref(pkg.substances, idx, "substance", b) for idx in b.u32s(count)]
        pkg.materials.append(mat)


def _ref(table: list, idx: int, what: str, b: BinReader):
    if idx >= len(table):
        raise MalformedContainer(f"Reference to {what} {idx} of {len(table)}", b.base + b.tell())
    return table[idx]


def _read_models(b: BinReader, pkg: ModelPackage, layout: PackageLayout, count: int, offset: int) -> None:
    for mi in range(count):
        b.seek(offset + mi * MODEL_SIZE)
        model = Model(uid=b.u32(), handle=b.u32(), type=b.u8())
        b.skip(1)
        model.vertex_buffer_id = b.u16()
        model.unknown1 = b.u16()
        model.unknown2 = b.u16()
        model.transform1 = b.vec3()
        model.transform2 = b.vec3()
        n_lods = b.u32()
        lods_ofs = b.u32()

        if pkg.vertex_buffers and model.vertex_buffer_id < len(pkg.vertex_buffers):
            model.vertex_buffer = pkg.vertex_buffers[model.vertex_buffer_id]

        for li in range(n_lods):
            b.seek(lods_ofs + li * LOD_SIZE)
            lod = Lod(mask=b.u32(), model=mi)
            n_inst = b.u32()
            inst_ofs = b.u32()

            for ii in range(n_inst):
                b.seek(inst_ofs + ii * LOD_INSTANCE_SIZE)
                inst = LodInstance(handle=b.u16(), unknown=b.u16(), model=mi, lod=li)
                n_subs = b.u32()
                subs_ofs = b.u32()

                # sub model records are back to back; PS2 ones vary in length
                b.seek(subs_ofs)
                for _ in range(n_subs):
                    sub = layout.read_sub_model(b)
                    sub.model = mi
                    sub.lod = li
                    sub.lod_instance = len(pkg.lod_instances)
                    sub.package = pkg
                    inst.sub_models.append(sub)
                    pkg.sub_models.append(sub)

                pkg.lod_instances.append(inst)
                lod.instances.append(inst)

            model.lods.append(lod)
        pkg.models.append(model)


def _decode(layout: PackageLayout, buffer) -> ModelPackage:
    b = BinReader(buffer.data, base=buffer.offset)

    magic = b.u32() if len(b) >= 4 else 0
    if magic != layout.magic:
        raise BadMagic(layout.magic, magic, buffer.offset)

    if len(b) < HEADER_SIZE:
        raise MalformedContainer(f"Model package header needs {HEADER_SIZE} bytes, have {len(b)}", buffer.offset)

    uid = b.u32()
    version = b.u32()
    flags = b.u32()
    if layout.version is not None and version != layout.version:
        raise UnsupportedPlatformVersion(
            layout.platform,
            layout.version,
            layout.version,
            version,
            f"{layout.platform.name} model package has header version {version}, expected {layout.version}",
        )

    counts = {}
    for name in ("models", "vertex_buffers", "indices", "materials", "substances", "textures"):
        counts[name] = (b.u32(), b.u32())
    tex_data_ofs = b.u32()
    tex_data_size = b.u32()

    pkg = ModelPackage(uid=uid, platform=layout.platform, version=version, flags=flags)
    pkg.detail_flags = layout.override_flags(version, flags)
    pkg.texture_data = b.slice(tex_data_ofs, tex_data_size)

    if layout.has_vertex_data:
        pkg.vertex_buffers = _read_vertex_buffers(b, *counts["vertex_buffers"])
        n_idx, idx_ofs = counts["indices"]
        b.seek(idx_ofs)
        pkg.index_buffer = IndexBuffer(b.u16s(n_idx))
    else:
        pkg.vertex_buffers = []
        pkg.index_buffer = IndexBuffer([])

    _read_materials(b, pkg, counts)
    _read_models(b, pkg, layout, *counts["models"])

    log.debug(
        "loaded %s package 0x%X (%s v%d): %d models, %d materials",
        layout.platform.name, uid, fourcc(magic), version, len(pkg.models), len(pkg.materials),
    )
    return pkg


def load_model_package(buffer, platform: PlatformType, version: int = 0) -> ModelPackage:
    """Decode a model package stored in a ChunkBuffer.

    Raises UnsupportedPlatformVersion when the buffer's context is not the one
    the platform/version pair is stored under, DecoderNotImplemented when no
    decoder exists for it and BadMagic when the payload is not a package of
    that platform.
    """
    check_chunk_id(buffer, platform, version)
    layout = get_layout(platform, version)
    return _decode(layout, buffer)


def compile_package(package: ModelPackage) -> bytes:
    raise DecoderNotImplemented("Writing model packages is not supported")


def find_material_in(packages: Iterable[ModelPackage], handle: MaterialHandle) -> MaterialLookup:
    """Look a material up across packages, e.g. a model package and globals."""
    status = LookupStatus.NOT_OWNED
    for pkg in packages:
        res = pkg.find_material(handle)
        if res.found:
            return res
        if res.status == LookupStatus.MISSING:
            status = LookupStatus.MISSING
    return MaterialLookup(status)
