from __future__ import annotations
import argparse, logging, sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from .ast import Program
from .content_id import STRATEGIES, get_strategy
from .diagnostics import Diagnostic, has_errors
from .disasm import disassemble_library, disassemble_module
from .encoding import encode
from .errors import EncodingError, ToolchainError
from .isa import ALL_ISAE_MASK
from .linker import ResolutionEnvironment, link
from .module import ObjectModule
from .parser import parse
from .semantic import AnalysisResult, analyze
from .writers import dump_library, dump_module, write_hex, write_lines

LOGGER = logging.getLogger("aluasm.assembler")

VERBOSITY = (logging.WARNING, logging.INFO, logging.DEBUG)

def setup_logging(verbose: int) -> None:
    logging.basicConfig(level=VERBOSITY[min(verbose, len(VERBOSITY) - 1)],
                        format="%(levelname)s %(name)s: %(message)s")

def assemble_text(text: str, *, filename: str | None = None, isae: Iterable[str] = ()
                  ) -> Tuple[Optional[Program], List[Diagnostic], Optional[AnalysisResult], Optional[ObjectModule]]:
    """Parsea, analiza (PASADA 1 y 2) y codifica.
    Devuelve (program, diagnostics_totales, analysis, module); module es None si hubo errores."""
    program, diags = parse(text, filename=filename)
    if program is None:
        return None, diags, None, None
    analysis = analyze(program, isae=isae, filename=filename)
    diags = list(diags) + list(analysis.diagnostics)
    if not analysis.ok:
        return program, diags, analysis, None
    try:
        module = encode(analysis)
    except EncodingError as ex:
        diags.append(ex.diagnostic)
        return program, diags, analysis, None
    return program, diags, analysis, module

def assemble_file(path: str | Path, *, isae: Iterable[str] = ()) -> Tuple[List[Diagnostic], Optional[ObjectModule]]:
    """Lee y ensambla un fichero (OSError si no se puede leer)."""
    text = Path(path).read_text(encoding="utf-8")
    _, diags, _, module = assemble_text(text, filename=str(path), isae=isae)
    return diags, module

def main(argv: Sequence[str] | None = None) -> int:
    ap = argparse.ArgumentParser(prog="aluasm", description="Ensamblador de AluVM: fuentes .aluasm -> módulos objeto .ao")
    ap.add_argument("sources", nargs="+", metavar="FILE", help="ficheros fuente")
    ap.add_argument("-v", "--verbose", action="count", default=0, help="más detalle en el log (-v, -vv)")
    ap.add_argument("-o", "--output", default="build/objects", metavar="DIR", help="directorio de salida")
    ap.add_argument("--isae", action="append", default=[], metavar="EXT",
                    help="extensión ISA adicional (repetible)")
    ap.add_argument("--lib", action="store_true",
                    help="enlaza cada módulo sin dependencias y escribe además la librería .alu")
    ap.add_argument("--digest", default="sha256", choices=sorted(STRATEGIES), help="algoritmo del id de librería")
    ap.add_argument("--dump", metavar="FILE", help="volcado legible de los módulos ('-' = salida estándar)")
    ap.add_argument("--hex", action="store_true", help="escribe también el código en hexadecimal (.hex)")
    ap.add_argument("--disassemble", action="store_true", help="desensambla el resultado por salida estándar")
    ap.add_argument("-j", "--jobs", type=int, default=1, metavar="N", help="ficheros ensamblados en paralelo")
    args = ap.parse_args(argv)
    setup_logging(args.verbose)

    try:
        with ThreadPoolExecutor(max_workers=max(1, args.jobs)) as pool:
            results = list(pool.map(lambda src: assemble_file(src, isae=args.isae), args.sources))
    except (OSError, UnicodeDecodeError) as ex:
        print(f"ERROR: no pude leer las fuentes: {ex}", file=sys.stderr)
        return 2

    had_error = False
    modules: List[ObjectModule] = []
    for diags, module in results:
        # imprimimos todo; si hay error, devolvemos código 1
        for d in diags:
            print(d, file=sys.stderr)
        if has_errors(diags) or module is None:
            had_error = True
        else:
            modules.append(module)
    if had_error:
        return 1

    out = Path(args.output)
    dump: List[str] = []
    try:
        out.mkdir(parents=True, exist_ok=True)
        for m in modules:
            m.write(out / f"{m.name}.ao")
            if args.hex:
                write_hex(m.code, out / f"{m.name}.hex")
            dump += dump_module(m) + [""]
            if args.disassemble:
                print("\n".join(disassemble_module(m)))
    except OSError as ex:
        print(f"ERROR al escribir salidas: {ex}", file=sys.stderr)
        return 2
    for m in modules:
        LOGGER.info("%s -> %s", m.name, out / f"{m.name}.ao")

    # Sin entorno, sólo los módulos sin llamadas externas llegan a librería
    libs = []
    lib_failed = False
    if args.lib:
        env = ResolutionEnvironment(isae=ALL_ISAE_MASK)
        for m in modules:
            try:
                libs.append(link(m, env, digest=get_strategy(args.digest)))
            except ToolchainError as ex:
                print(ex.diagnostic, file=sys.stderr)
                lib_failed = True

    try:
        for lib in libs:
            lib.write(out / f"{lib.name}.alu")
            dump += dump_library(lib) + [""]
            if args.disassemble:
                print("\n".join(disassemble_library(lib)))
        if args.dump == "-":
            print("\n".join(dump))
        elif args.dump:
            write_lines(dump, args.dump)
    except OSError as ex:
        print(f"ERROR al escribir salidas: {ex}", file=sys.stderr)
        return 2

    for lib in libs:
        print(f"{lib.name}: {lib.id}")
    print(f"OK: {len(modules)} módulo(s) → {out}")
    return 1 if lib_failed else 0

if __name__ == "__main__":
    raise SystemExit(main())
