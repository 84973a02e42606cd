from __future__ import annotations

import argparse
import logging
from typing import List

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from libgmc.chunks import read_chunks, walk
from libgmc.errors import GmcError
from libgmc.model import ChunkBuffer
from libgmc.packages import load_model_package
from libgmc.platform import PlatformType, fourcc, resolve_chunk_id
from libgmc.trace import format_model_package, format_textures

console = Console()
log = logging.getLogger("gmccli")

PLATFORMS = {
    "pc": PlatformType.PC,
    "ps2": PlatformType.PS2,
    "xbox": PlatformType.XBOX,
    "wii": PlatformType.WII,
}


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _tag(context: int) -> str:
    s = fourcc(context)
    return s if s.isprintable() and s.isascii() else "-"


def _select(root: ChunkBuffer, args: argparse.Namespace) -> List[ChunkBuffer]:
    context = resolve_chunk_id(PLATFORMS[args.platform], args.version)
    found = [c for c in walk(root) if c.context == context]
    if not found:
        raise SystemExit(f"No model packages ({fourcc(context)}) were found.")
    if args.index <= 0:
        raise SystemExit("Index cannot be zero or negative.")
    if args.index > len(found):
        raise SystemExit(f"Index was larger than the number of packages available ({len(found)}).")
    return found[args.index - 1 :] if args.all else [found[args.index - 1]]


def _for_each_package(args: argparse.Namespace, report) -> int:
    root = read_chunks(args.file)
    failed = 0
    for n, buf in enumerate(_select(root, args), start=args.index):
        console.print(f"[bold]>> ModelPackage index:[/bold] {n}")
        if buf.parent is not None and buf.parent.parent is not None:
            console.print(f"[bold]>> ModelPackage parent:[/bold] 0x{buf.parent.context:08X}")
        try:
            pkg = load_model_package(buf, PLATFORMS[args.platform], args.version)
        except GmcError as e:
            console.print(f"[red]{escape(str(e))}[/red]")
            failed += 1
            continue
        console.print(f">> Processed {len(pkg.models)} models / {len(pkg.materials)} materials.")
        for line in report(pkg, args):
            console.print(line, markup=False, highlight=False, soft_wrap=True)
    return 1 if failed else 0


def cmd_chunks(args: argparse.Namespace) -> int:
    root = read_chunks(args.file)

    t = Table(title=f"Chunks in {args.file}")
    t.add_column("Depth", justify="right")
    t.add_column("Context", justify="right")
    t.add_column("Tag")
    t.add_column("Offset", justify="right")
    t.add_column("Size", justify="right")
    t.add_column("Parent", justify="right")

    def depth(c: ChunkBuffer) -> int:
        d = 0
        while c.parent is not None and c.parent.parent is not None:
            c = c.parent
            d += 1
        return d

    for c in walk(root):
        parent = c.parent
        t.add_row(
            str(depth(c)),
            f"0x{c.context:08X}",
            _tag(c.context) + (" (package)" if c.is_package else ""),
            f"0x{c.offset:X}",
            str(c.size),
            f"0x{parent.context:08X}" if parent is not None and parent is not root else "-",
        )
    console.print(t)
    return 0


def cmd_models(args: argparse.Namespace) -> int:
    console.print(">> Dumping model info...")
    return _for_each_package(args, lambda pkg, a: format_model_package(pkg, vif=not a.no_vif))


def cmd_textures(args: argparse.Namespace) -> int:
    console.print(">> Dumping texture info...")
    return _for_each_package(args, lambda pkg, a: format_textures(pkg))


def _add_selection(p: argparse.ArgumentParser) -> None:
    p.add_argument("file")
    p.add_argument("--platform", choices=sorted(PLATFORMS), default="ps2")
    p.add_argument("--version", type=int, default=0, help="package version (selects PC v1/v6)")
    p.add_argument("--index", type=int, default=1, help="1-based index of the package to load")
    p.add_argument("--all", action="store_true", help="also load every package after --index")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="gmc")
    p.add_argument("-v", "--verbose", action="store_true")
    sub = p.add_subparsers(dest="cmd", required=True)

    c = sub.add_parser("chunks", help="List the chunk tree of a container")
    c.add_argument("file")
    c.set_defaults(fn=cmd_chunks)

    m = sub.add_parser("models", help="Dump model info and VIF traces of model packages")
    _add_selection(m)
    m.add_argument("--no-vif", action="store_true", help="skip the VIF trace of sub models")
    m.set_defaults(fn=cmd_models)

    x = sub.add_parser("textures", help="Dump texture info of model packages")
    _add_selection(x)
    x.set_defaults(fn=cmd_textures)

    return p


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)
    try:
        return int(args.fn(args))
    except FileNotFoundError as e:
        console.print(f"[red]File not found:[/red] {escape(str(e.filename))}")
        return 2
    except GmcError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
