from __future__ import annotations

import io
import weakref
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import List, NamedTuple, Optional, Tuple

from .platform import MaterialPackageType, PlatformType, material_package_type

Vec3 = Tuple[float, float, float]
Matrix4 = Tuple[Tuple[float, float, float, float], ...]


# -----------------------------
# Chunk tree
#
# Buffers are created once per container load and never mutated afterwards.
# Ownership runs top-down through `children`; `parent` is a weak link back
# to the enclosing container.
# -----------------------------

@dataclass(eq=False)
class ChunkBuffer:
    """One entry of a spooler container, preserved verbatim."""

    context: int   # type tag
    offset: int    # absolute offset of the payload in the loaded file
    size: int      # declared payload length
    data: memoryview = field(repr=False)
    version: int = 0
    strategy: int = 0
    alignment: int = 0
    children: List["ChunkBuffer"] = field(default_factory=list, repr=False)

    _parent: Optional["weakref.ReferenceType[ChunkBuffer]"] = field(
        default=None, init=False, repr=False
    )

    @property
    def parent(self) -> Optional["ChunkBuffer"]:
        return self._parent() if self._parent is not None else None

    @property
    def is_package(self) -> bool:
        return bool(self.children)

    def attach(self, child: "ChunkBuffer") -> None:
        child._parent = weakref.ref(self)
        self.children.append(child)

    def open(self) -> io.BytesIO:
        return io.BytesIO(self.data)


# -----------------------------
# Model package tables
#
# Each level lives in a flat list owned by the ModelPackage. Back-references
# (sub model -> lod instance -> lod -> model) are plain indices; the only
# object back-reference is SubModel.package, which is weak.
# -----------------------------

class VertexType(Enum):
    VERTEX12 = 0x20  # position, normal, uv
    VERTEX15 = 0x2C  # + blend weights
    VERTEX16 = 0x30  # + blend weights, tangent


@dataclass
class VertexBuffer:
    vertex_type: VertexType
    count: int
    data: Optional[bytes] = field(default=None, repr=False)

    @property
    def stride(self) -> int:
        return self.vertex_type.value

    @property
    def has_blend_weights(self) -> bool:
        return self.vertex_type != VertexType.VERTEX12


@dataclass
class IndexBuffer:
    indices: Optional[List[int]] = field(default_factory=list, repr=False)


@dataclass
class Texture:
    uid: int = 0
    hash: int = 0
    type: int = 0
    flags: int = 0
    width: int = 0
    height: int = 0
    data_offset: int = 0
    data_size: Optional[int] = None

    # Xbox only
    format: Optional[int] = None

    # PS2 only
    reserved: int = 0
    unknown1: int = 0
    unknown2: int = 0
    cluts: List[int] = field(default_factory=list)

    # Shared texture data of the owning package (not owned by the texture).
    buffer: Optional[memoryview] = field(default=None, repr=False, compare=False)

    @property
    def data(self) -> Optional[bytes]:
        if self.buffer is None:
            return None
        end = len(self.buffer) if self.data_size is None else self.data_offset + self.data_size
        return bytes(self.buffer[self.data_offset : end])


@dataclass
class Substance:
    flags: int = 0
    mode: int = 0
    type: int = 0
    textures: Optional[List[Texture]] = field(default_factory=list)


@dataclass
class Material:
    flags: int = 0
    animation_speed: float = 0.0
    substances: Optional[List[Substance]] = field(default_factory=list)

    @property
    def animated(self) -> bool:
        return bool(self.flags & 1)


class MaterialHandle(NamedTuple):
    uid: int
    index: int


WILDCARD_UID = 0xFFFD


class LookupStatus(IntEnum):
    MISSING = -1
    NOT_OWNED = 0
    FOUND = 1


@dataclass(frozen=True)
class MaterialLookup:
    status: LookupStatus
    material: Optional[Material] = None

    @property
    def found(self) -> bool:
        return self.status == LookupStatus.FOUND


SUBMODEL_HAS_VECTORS = 0x1
SUBMODEL_HAS_TRANSFORM = 0x2


@dataclass(eq=False)
class SubModel:
    type: int = 0
    flags: int = 0
    unknown1: int = 0
    unknown2: int = 0
    texture_id: int = 0
    texture_source: int = 0

    v1: Optional[Vec3] = None
    v2: Optional[Vec3] = None
    transform: Optional[Matrix4] = None

    # PS2: VIF-packed attribute stream, decoded on demand by libgmc.vif
    model_data: bytes = field(default=b"", repr=False)

    # PC/Xbox/Wii geometry ranges into the vertex and index buffers
    vertex_base_offset: int = 0
    vertex_offset: int = 0
    vertex_count: int = 0
    index_offset: int = 0
    index_count: int = 0

    model: int = -1
    lod: int = -1
    lod_instance: int = -1
    _package: Optional["weakref.ReferenceType[ModelPackage]"] = field(
        default=None, repr=False
    )

    @property
    def has_vector_data(self) -> bool:
        return bool(self.flags & SUBMODEL_HAS_VECTORS)

    @property
    def has_transform(self) -> bool:
        return bool(self.flags & SUBMODEL_HAS_TRANSFORM)

    @property
    def material(self) -> MaterialHandle:
        return MaterialHandle(self.texture_source, self.texture_id)

    @property
    def package(self) -> Optional["ModelPackage"]:
        return self._package() if self._package is not None else None

    @package.setter
    def package(self, value: Optional["ModelPackage"]) -> None:
        self._package = weakref.ref(value) if value is not None else None


@dataclass(eq=False)
class LodInstance:
    handle: int = 0
    unknown: int = 0
    sub_models: Optional[List[SubModel]] = field(default_factory=list)
    model: int = -1
    lod: int = -1


@dataclass(eq=False)
class Lod:
    mask: int = 0
    instances: Optional[List[LodInstance]] = field(default_factory=list)
    model: int = -1


@dataclass(eq=False)
class Model:
    uid: int = 0
    handle: int = 0
    type: int = 0
    vertex_buffer_id: int = 0
    unknown1: int = 0
    unknown2: int = 0
    transform1: Vec3 = (0.0, 0.0, 0.0)
    transform2: Vec3 = (0.0, 0.0, 0.0)
    lods: Optional[List[Lod]] = field(default_factory=list)
    vertex_buffer: Optional[VertexBuffer] = field(default=None, repr=False)

    @property
    def primary_type(self) -> int:
        return self.type & 0xF

    @property
    def secondary_type(self) -> int:
        return (self.type >> 4) & 0xF

    @property
    def sub_models(self) -> List[SubModel]:
        out: List[SubModel] = []
        for lod in self.lods or ():
            for inst in lod.instances or ():
                out.extend(inst.sub_models or ())
        return out


@dataclass(eq=False)
class ModelPackage:
    uid: int
    platform: PlatformType
    version: int
    flags: int = 0

    models: List[Model] = field(default_factory=list)
    lod_instances: List[LodInstance] = field(default_factory=list)
    sub_models: List[SubModel] = field(default_factory=list)

    vertex_buffers: Optional[List[VertexBuffer]] = None
    index_buffer: Optional[IndexBuffer] = None

    materials: List[Material] = field(default_factory=list)
    substances: List[Substance] = field(default_factory=list)
    textures: List[Texture] = field(default_factory=list)
    texture_data: Optional[memoryview] = field(default=None, repr=False)

    # Flags as seen through the platform's detail overrides (see
    # libgmc.packages); equals `flags` unless an override applies.
    detail_flags: int = 0

    # Set by editors while edits are outstanding; blocks teardown.
    changes_pending: bool = False

    @property
    def material_package_type(self) -> MaterialPackageType:
        return material_package_type(self.platform)

    @property
    def has_materials(self) -> bool:
        return bool(self.materials)

    @property
    def has_textures(self) -> bool:
        return self.has_materials

    @property
    def has_models(self) -> bool:
        return bool(self.models) and self.vertex_buffers is not None and self.index_buffer is not None

    @property
    def has_blend_weights(self) -> bool:
        return any(vb.has_blend_weights for vb in self.vertex_buffers or ())

    def find_material(self, handle: MaterialHandle) -> MaterialLookup:
        if handle.uid == WILDCARD_UID or handle.uid == self.uid:
            if self.has_materials and 0 <= handle.index < len(self.materials):
                return MaterialLookup(LookupStatus.FOUND, self.materials[handle.index])
            return MaterialLookup(LookupStatus.MISSING)
        return MaterialLookup(LookupStatus.NOT_OWNED)

    def free_models(self) -> bool:
        """Tear down the model graph. Returns False (and does nothing) while
        changes are pending."""
        if self.changes_pending:
            return False

        for model in self.models:
            model.vertex_buffer = None
            for lod in model.lods or ():
                lod.model = -1
                for inst in lod.instances or ():
                    for sub in inst.sub_models or ():
                        sub.package = None
                    inst.sub_models.clear()
                    inst.sub_models = None
                lod.instances.clear()
                lod.instances = None
            model.lods.clear()
            model.lods = None

        self.models.clear()
        self.lod_instances.clear()
        self.sub_models.clear()

        for vb in self.vertex_buffers or ():
            vb.data = None
        if self.index_buffer is not None:
            self.index_buffer.indices = None
        return True

    def free_materials(self) -> bool:
        if self.changes_pending:
            return False

        for material in self.materials:
            material.substances.clear()
            material.substances = None
        for substance in self.substances:
            substance.textures.clear()
            substance.textures = None
        for texture in self.textures:
            texture.buffer = None

        self.materials.clear()
        self.substances.clear()
        self.textures.clear()
        return True
