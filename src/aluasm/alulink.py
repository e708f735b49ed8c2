from __future__ import annotations
import argparse, logging, sys
from pathlib import Path
from typing import List, Sequence

from .assembler import setup_logging
from .config import ToolchainConfig, load_manifest
from .errors import ToolchainError
from .linker import link_modules
from .module import ObjectModule
from .writers import dump_library, write_lines

LOGGER = logging.getLogger("aluasm.alulink")

def find_objects(names: Sequence[str], obj_dir: Path) -> List[Path]:
    """Rutas de los objetos; sin nombres, todos los .ao del directorio (en orden alfabético)."""
    if not names:
        return sorted(obj_dir.glob("*.ao"))
    out = []
    for n in names:
        p = Path(n)
        if not p.exists() and (obj_dir / p).exists():
            p = obj_dir / p
        elif not p.exists() and (obj_dir / f"{n}.ao").exists():
            p = obj_dir / f"{n}.ao"
        out.append(p)
    return out

def main(argv: Sequence[str] | None = None) -> int:
    ap = argparse.ArgumentParser(prog="alulink", description="Enlazador de AluVM: módulos .ao -> librería .alu")
    ap.add_argument("objects", nargs="*", metavar="OBJECT", help="módulos objeto (por defecto, todos los de -O)")
    ap.add_argument("-v", "--verbose", action="count", default=0, help="más detalle en el log (-v, -vv)")
    ap.add_argument("-O", "--objects-dir", default="build/objects", metavar="DIR",
                    help="directorio de los módulos objeto")
    ap.add_argument("-m", "--manifest", metavar="MANIFEST", help="manifiesto JSON de resolución")
    ap.add_argument("-o", "--output", metavar="OUT", help="fichero .alu de salida (por defecto build/<nombre>.alu)")
    ap.add_argument("-n", "--name", help="nombre de la librería (por defecto, el del primer módulo)")
    ap.add_argument("--dump", metavar="FILE", help="volcado legible de la librería ('-' = salida estándar)")
    args = ap.parse_args(argv)
    setup_logging(args.verbose)

    try:
        cfg = load_manifest(args.manifest) if args.manifest else ToolchainConfig()
        paths = find_objects(args.objects, Path(args.objects_dir))
        if not paths:
            print(f"ERROR: no hay módulos objeto en {args.objects_dir}", file=sys.stderr)
            return 1
        modules = [ObjectModule.read(p) for p in paths]
        env = cfg.environment()
        lib, inline = link_modules(modules, env, digest=cfg.strategy, name=args.name)
    except ToolchainError as ex:
        print(ex.diagnostic, file=sys.stderr)
        return 1
    except OSError as ex:
        print(f"ERROR: no pude leer {ex.filename}: {ex.strerror}", file=sys.stderr)
        return 2

    out = Path(args.output) if args.output else Path("build") / f"{lib.name}.alu"
    try:
        out.parent.mkdir(parents=True, exist_ok=True)
        lib.write(out)
        # Las dependencias en línea se escriben junto a la librería principal
        for alias, dep in inline.items():
            dep.write(out.parent / f"{alias}.alu")
            LOGGER.info("dependencia %s -> %s", alias, dep.id)
        if args.dump == "-":
            print("\n".join(dump_library(lib)))
        elif args.dump:
            write_lines(dump_library(lib), args.dump)
    except OSError as ex:
        print(f"ERROR al escribir salidas: {ex}", file=sys.stderr)
        return 2

    print(f"OK: {lib.name} → {out}")
    print(lib.id)
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
