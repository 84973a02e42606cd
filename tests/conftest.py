"""In-memory builders for containers and model packages."""

from __future__ import annotations

import struct

import pytest

from libgmc.chunks import CHUNK_MAGIC
from libgmc.model import ChunkBuffer


def _pad4(b: bytearray) -> None:
    while len(b) % 4:
        b.append(0)


def build_container(entries, version: int = 3) -> bytes:
    """entries: [(context, payload)] where payload is bytes or a nested entry list."""
    payloads = [build_container(p) if isinstance(p, list) else bytes(p) for _, p in entries]

    table = bytearray()
    body = bytearray()
    ofs = 16 + 16 * len(entries)
    for (context, _), data in zip(entries, payloads):
        table += struct.pack("<IIBBBBI", context, ofs + len(body), 0, 1, 4, 0, len(data))
        body += data
        _pad4(body)

    size = 16 + len(table) + len(body)
    return struct.pack("<4I", CHUNK_MAGIC, size, len(entries), version) + bytes(table) + bytes(body)


class _Blob:
    def __init__(self, header_size: int):
        self.buf = bytearray(header_size)

    def add(self, data: bytes) -> int:
        _pad4(self.buf)
        ofs = len(self.buf)
        self.buf += data
        return ofs


def pc_texture(uid=1, hash=0, data_offset=0, data_size=0, type=0, flags=0, width=0, height=0) -> bytes:
    return struct.pack("<4I4H", uid, hash, data_offset, data_size, type, flags, width, height)


def xbox_texture(uid=1, hash=0, data_offset=0, data_size=0, format=0, width=0, height=0) -> bytes:
    return struct.pack("<5I2H", uid, hash, data_offset, data_size, format, width, height)


def ps2_texture(reserved=0, type=0, flags=0, width=0, height=0, unknown1=0, data_offset=0, unknown2=0, cluts=()) -> bytes:
    return struct.pack(
        "<QBBHHHIII", reserved, type, len(cluts), flags, width, height, unknown1, data_offset, unknown2
    ) + struct.pack(f"<{len(cluts)}I", *cluts)


def _encode_sub(blob: _Blob, s: dict, ps2: bool) -> bytes:
    head = struct.pack(
        "<6H",
        s.get("type", 0),
        s.get("flags", 0),
        s.get("unknown1", 0),
        s.get("unknown2", 0),
        s.get("texture_id", 0),
        s.get("texture_source", 0),
    )
    if not ps2:
        return head + struct.pack(
            "<5I",
            s.get("vertex_base_offset", 0),
            s.get("vertex_offset", 0),
            s.get("vertex_count", 0),
            s.get("index_offset", 0),
            s.get("index_count", 0),
        )

    data = s.get("data", b"")
    rec = head + struct.pack("<II", blob.add(data), len(data))
    if s.get("flags", 0) & 0x1:
        rec += struct.pack("<6f", *s["v1"], *s["v2"])
    if s.get("flags", 0) & 0x2:
        rec += struct.pack("<16f", *s["transform"])
    return rec


def build_package(
    magic: int,
    *,
    uid: int = 0x10,
    version: int = 0,
    flags: int = 0,
    ps2: bool = True,
    models=(),
    vertex_buffers=(),
    indices=(),
    textures=(),
    substances=(),
    materials=(),
    texture_data: bytes = b"",
) -> bytes:
    """Lay out a model package; see libgmc.packages for the record formats.

    models: [{uid, handle, type, lods: [{mask, instances: [{handle, subs: [dict]}]}]}]
    vertex_buffers: [(stride, count, data)]
    textures: pre-encoded records (pc_texture/xbox_texture/ps2_texture)
    substances: [{flags, mode, type, textures: [index]}]
    materials: [{flags, speed, substances: [index]}]
    """
    blob = _Blob(0x48)

    tex_data_ofs = blob.add(texture_data)

    vb_records = b"".join(
        struct.pack("<4I", count, stride, blob.add(data), 0) for stride, count, data in vertex_buffers
    )
    vb_ofs = blob.add(vb_records)
    idx_ofs = blob.add(struct.pack(f"<{len(indices)}H", *indices))
    tex_ofs = blob.add(b"".join(textures))

    sub_records = b""
    for s in substances:
        refs = blob.add(struct.pack(f"<{len(s['textures'])}I", *s["textures"]))
        sub_records += struct.pack(
            "<IBBHII", s.get("flags", 0), s.get("mode", 0), s.get("type", 0), 0, len(s["textures"]), refs
        )
    sub_ofs = blob.add(sub_records)

    mat_records = b""
    for m in materials:
        refs = blob.add(struct.pack(f"<{len(m['substances'])}I", *m["substances"]))
        mat_records += struct.pack("<IIHHf", len(m["substances"]), refs, m.get("flags", 0), 0, m.get("speed", 0.0))
    mat_ofs = blob.add(mat_records)

    model_records = b""
    for m in models:
        lod_records = b""
        for lod in m.get("lods", ()):
            inst_records = b""
            for inst in lod.get("instances", ()):
                subs = inst.get("subs", ())
                subs_ofs = blob.add(b"".join(_encode_sub(blob, s, ps2) for s in subs))
                inst_records += struct.pack(
                    "<HHIII", inst.get("handle", 0), inst.get("unknown", 0), len(subs), subs_ofs, 0
                )
            inst_ofs = blob.add(inst_records)
            lod_records += struct.pack("<4I", lod.get("mask", 0), len(lod.get("instances", ())), inst_ofs, 0)
        lods_ofs = blob.add(lod_records)
        model_records += struct.pack(
            "<IIBBHHH3f3fII",
            m.get("uid", 0),
            m.get("handle", 0),
            m.get("type", 0),
            0,
            m.get("vertex_buffer", 0),
            m.get("unknown1", 0),
            m.get("unknown2", 0),
            *m.get("transform1", (0.0, 0.0, 0.0)),
            *m.get("transform2", (0.0, 0.0, 0.0)),
            len(m.get("lods", ())),
            lods_ofs,
        )
    models_ofs = blob.add(model_records)

    blob.buf[0:0x48] = struct.pack(
        "<18I",
        magic,
        uid,
        version,
        flags,
        len(models), models_ofs,
        len(vertex_buffers), vb_ofs,
        len(indices), idx_ofs,
        len(materials), mat_ofs,
        len(substances), sub_ofs,
        len(textures), tex_ofs,
        tex_data_ofs, len(texture_data),
    )
    return bytes(blob.buf)


def as_buffer(context: int, data: bytes, offset: int = 0) -> ChunkBuffer:
    return ChunkBuffer(context=context, offset=offset, size=len(data), data=memoryview(data))


def vif(cmd: int, imm: int = 0, num: int = 0, irq: bool = False) -> bytes:
    return struct.pack("<I", (imm & 0xFFFF) | (num << 16) | ((cmd & 0x7F) << 24) | (int(irq) << 31))


@pytest.fixture
def ps2_models():
    return [
        {
            "uid": 0xCAFE,
            "handle": 0x1234,
            "type": 0x21,
            "unknown1": 7,
            "unknown2": 8,
            "transform1": (1.0, 2.0, 3.0),
            "transform2": (4.0, 5.0, 6.0),
            "lods": [
                {
                    "mask": 0x1F,
                    "instances": [
                        {
                            "handle": 3,
                            "subs": [
                                {
                                    "type": 5,
                                    "flags": 0x3,
                                    "texture_id": 2,
                                    "texture_source": 0x10,
                                    "v1": (1.0, 0.0, 0.0),
                                    "v2": (0.0, 1.0, 0.0),
                                    "transform": [float(i) for i in range(16)],
                                    "data": vif(0x01, imm=0x0204) + vif(0x00) + b"\0" * 4,
                                },
                                {"type": 6, "flags": 0, "data": b"\x01\x02\x03"},
                            ],
                        }
                    ],
                },
                {"mask": 0x20, "instances": [{"handle": 4, "subs": [{"type": 7}]}]},
            ],
        }
    ]
