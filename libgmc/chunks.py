"""libgmc.chunks

Spooler ('CHNK') container reader.

A container is a 16-byte header followed by a table of 16-byte entries; each
entry points at a payload inside the container. Payloads that start with the
container magic are containers themselves and are parsed recursively, so the
result is a tree of ChunkBuffer objects with the root standing for the whole
file.

Payloads are memoryview slices of the input: nothing is copied until a
consumer asks for it.
"""

from __future__ import annotations

import logging
from typing import Iterator

from .binreader import BinReader
from .errors import MalformedContainer
from .model import ChunkBuffer

log = logging.getLogger(__name__)

CHUNK_MAGIC = 0x4B4E4843  # 'CHNK'

HEADER_SIZE = 16
ENTRY_SIZE = 16


def is_container(data) -> bool:
    return len(data) >= 4 and BinReader(data).peek_u32() == CHUNK_MAGIC


def _parse_container(node: ChunkBuffer) -> None:
    data = node.data
    base = node.offset
    b = BinReader(data, base=base)

    if len(data) < HEADER_SIZE:
        raise MalformedContainer(f"Container header needs {HEADER_SIZE} bytes, have {len(data)}", base)

    magic = b.u32()
    if magic != CHUNK_MAGIC:
        raise MalformedContainer(f"Missing 'CHNK' magic, found 0x{magic:08X}", base)

    size = b.u32()
    count = b.u32()
    _ = b.u32()  # container version

    if size < HEADER_SIZE or size > len(data):
        raise MalformedContainer(
            f"Container declares {size} bytes but only {len(data)} are available", base
        )
    if HEADER_SIZE + count * ENTRY_SIZE > size:
        raise MalformedContainer(f"Entry table of {count} entries overruns container", base)

    for i in range(count):
        entry_ofs = b.tell()
        context = b.u32()
        offset = b.u32()
        version = b.u8()
        strategy = b.u8()
        alignment = b.u8()
        _ = b.u8()  # reserved
        length = b.u32()

        if offset + length > size:
            raise MalformedContainer(
                f"Entry {i} (context=0x{context:08X}) declares {length} bytes at +0x{offset:X}, "
                f"container holds {size}",
                base + entry_ofs,
            )

        child = ChunkBuffer(
            context=context,
            offset=base + offset,
            size=length,
            data=data[offset : offset + length],
            version=version,
            strategy=strategy,
            alignment=alignment,
        )
        node.attach(child)
        log.debug("chunk 0x%08X at 0x%X size=%d", context, child.offset, length)

        if is_container(child.data):
            _parse_container(child)


def parse_chunks(data) -> ChunkBuffer:
    """Parse a container and return its root buffer."""
    view = memoryview(data)
    root = ChunkBuffer(context=CHUNK_MAGIC, offset=0, size=len(view), data=view)
    _parse_container(root)
    return root


def read_chunks(path: str) -> ChunkBuffer:
    with open(path, "rb") as f:
        data = f.read()
    return parse_chunks(data)


def walk(root: ChunkBuffer) -> Iterator[ChunkBuffer]:
    """Yield every buffer below root, depth first in file order."""
    for child in root.children:
        yield child
        yield from walk(child)


def find_buffers(root: ChunkBuffer, context: int) -> Iterator[ChunkBuffer]:
    return (c for c in walk(root) if c.context == context)
