"""libgmc.trace

Plain-text reports over decoded packages: the model dump (with a VIF trace
per PS2 sub model) and the texture dump. Column layout follows the console
output researchers already compare against, so keep widths stable.
"""

from __future__ import annotations

from typing import Iterator, List

from .errors import GmcError
from .model import ModelPackage, Texture
from .platform import PlatformType
from .vif import DecodedInstruction, Rgba5551, VifCommand, VifMaskType, iter_instructions


def _fmt_value(v) -> str:
    if isinstance(v, float):
        return f"{v:<8.4f}" if v < 0 else f" {v:<7.4f}"
    return f"{v:<8}" if v < 0 else f" {v:<7}"


def _fmt_element(el: tuple) -> str:
    if isinstance(el, Rgba5551):
        return f"r:{el.r:<6}g:{el.g:<6}b:{el.b:<6}a:{el.a:<6}"
    return "".join(_fmt_value(v) for v in el)


def _fmt_info(instr: DecodedInstruction) -> str:
    ops = instr.operands
    tag = instr.tag

    if not instr.handled:
        return "(unhandled)"
    if instr.name == "STCYCL":
        return "{0:<10}{1:<10}".format(f"CL:{ops['CL']},", f"WL:{ops['WL']}")
    if instr.name == "OFFSET":
        return f"{'OFFSET:%X' % ops['OFFSET']:<10}"
    if instr.name == "ITOP":
        return f"{'ADDR:%X' % ops['ADDR']:<10}"
    if instr.name == "STMOD":
        return f"MODE:{ops['MODE']} ({instr.state.mode_name})"
    if instr.name == "MSCAL":
        return f"{'EXECADDR:%X' % ops['EXECADDR']:<10}"
    if instr.name == "STMASK":
        return f"MASK:{ops['MASK']:08X}"
    if instr.name == "DIRECT":
        return f"{'SIZE:%X' % ops['SIZE']:<10}"
    if "ADDR" in ops and "NUM" in ops:
        addr = f"ADDR:{tag.addr:X} ({tag.addr * 16:X}),"
        if "IRQ" in ops:
            return "{0:<10}{1:<10}{2:<10}".format(addr, f"NUM:{tag.num},", f"IRQ:{int(tag.irq)}")
        return "{0:<10}{1:<10}".format(addr, f"NUM:{tag.num}")
    return ""


def format_instruction(instr: DecodedInstruction) -> List[str]:
    props = ""
    if instr.flg:
        props += "+FLAG "
    if instr.usn:
        props += "+UNSIGNED "

    lines = [f"  {instr.name:<16}{' : ':>4}{props:<16}{': ':>4}{_fmt_info(instr):<8}"]

    if instr.tag.cmd == VifCommand.STMASK and instr.state.masks is not None:
        lines.append("-> " + "".join(f"{n:<16}" for n in ("MASK_X", "MASK_Y", "MASK_Z", "MASK_W")))
        for i, row in enumerate(instr.state.masks):
            lines.append("-> " + "".join(f"{VifMaskType(m).name:<16}" for m in row) + f"; V{i + 1}")

    index = 0
    for group in instr.groups:
        lines.append(f"-> [{index + 1:04d}]: " + "".join(_fmt_element(el) for el in group))
        index += len(group)

    return lines


def format_vif_stream(data) -> Iterator[str]:
    """Trace one sub model stream; a decode error ends this stream only."""
    try:
        for instr in iter_instructions(data):
            yield from format_instruction(instr)
    except GmcError as e:
        yield f"!! {e}"


def _vec3(v) -> str:
    return f"({v[0]:.4f},{v[1]:.4f},{v[2]:.4f})"


def format_model_package(pkg: ModelPackage, vif: bool = True) -> Iterator[str]:
    for i, model in enumerate(pkg.models):
        subs = model.sub_models

        yield f"**** Model {i + 1} / {len(pkg.models)} *****"
        yield f"Type: ({model.primary_type}, {model.secondary_type})"
        yield f"UID: {model.uid:08X}"
        yield f"Handle: {model.handle:08X}"
        yield f"Unknown: ({model.unknown1:04X},{model.unknown2:04X})"
        yield f"Transform1: {_vec3(model.transform1)}"
        yield f"Transform2: {_vec3(model.transform2)}"

        for ii, sub in enumerate(subs):
            yield f"******** Sub model {ii + 1} / {len(subs)} *********"
            yield f"Type: {sub.type}"
            yield f"Flags: {sub.flags}"
            yield f"Unknown: ({sub.unknown1},{sub.unknown2})"
            yield f"TexId: {sub.texture_id}"
            yield f"TexSource: {sub.texture_source:04X}"

            if sub.has_vector_data:
                yield f"V1: {_vec3(sub.v1)}"
                yield f"V2: {_vec3(sub.v2)}"

            if sub.has_transform:
                for axis, row in zip("XYZ", sub.transform):
                    yield f"Transform {axis}: ({row[0]:.4f},{row[1]:.4f},{row[2]:.4f},{row[3]:.4f})"

            if pkg.platform != PlatformType.PS2:
                yield (
                    f"Vertices: base={sub.vertex_base_offset} offset={sub.vertex_offset} "
                    f"count={sub.vertex_count}"
                )
                yield f"Indices: offset={sub.index_offset} count={sub.index_count}"
            elif vif:
                yield from format_vif_stream(sub.model_data)
            yield ""
        yield ""


def _texture_key(pkg: ModelPackage, tex: Texture) -> str:
    if pkg.platform == PlatformType.PS2:
        return f"{tex.reserved:016X}"
    return f"{tex.uid:08X}"


def format_textures(pkg: ModelPackage) -> Iterator[str]:
    for tex in pkg.textures:
        yield f"texture {_texture_key(pkg, tex)} {{"
        yield f"  type = {tex.type};"
        yield f"  flags = 0x{tex.flags:X};"
        yield f"  width = {tex.width};"
        yield f"  height = {tex.height};"

        if pkg.platform == PlatformType.PS2:
            yield f"  unknown1 = 0x{tex.unknown1:X};"
            yield f"  dataOffset = 0x{tex.data_offset:X};"
            yield f"  unknown2 = 0x{tex.unknown2:X};"
            yield f"  cluts[{len(tex.cluts)}] = ["
            for clut in tex.cluts:
                yield f"    0x{clut:X},"
            yield "  ];"
        else:
            yield f"  hash = 0x{tex.hash:08X};"
            if tex.format is not None:
                yield f"  format = 0x{tex.format:X};"
            yield f"  dataOffset = 0x{tex.data_offset:X};"
            yield f"  dataSize = 0x{tex.data_size or 0:X};"

        yield "}"
