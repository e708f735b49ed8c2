from __future__ import annotations
from pathlib import Path
from typing import Iterable, List, Union

from .disasm import disassemble_library, disassemble_module
from .isa import INSTR_SIZE
from .library import Library
from .module import ObjectModule
from .symbols import kind_label

def to_hex_lines(code: bytes) -> List[str]:
    """Una palabra de instrucción por línea, bytes en orden de memoria."""
    return [code[i:i + INSTR_SIZE].hex() for i in range(0, len(code), INSTR_SIZE)]

def dump_module(module: ObjectModule) -> List[str]:
    """Volcado legible de un módulo objeto: cabecera, símbolos, reubicaciones y código."""
    lines = [
        f"módulo:   {module.name}",
        f"isae:     {module.isae_manifest}",
        f"entrada:  {'-' if module.entry is None else f'{module.entry:#06x}'}",
        f"código:   {len(module.code)} bytes",
        f"datos:    {len(module.data)} bytes",
        "",
        "símbolos:",
    ]
    for s in module.exports + module.symbols:
        lines.append(f"  {s.value:#06x}  {kind_label(s.kind):<10} {s.name}")
    lines.append("importaciones:")
    for imp in module.imports:
        lines.append(f"  {imp.name}")
    lines.append("librerías:")
    for ref in module.libs:
        lines.append(f"  {ref.alias} = {ref.lib_id or '?'}")
    lines.append("reubicaciones:")
    for r in module.relocations:
        lines.append(f"  {r.offset:#06x}  {r.kind.name:<14} {r.target}")
    lines.append("")
    lines.extend(disassemble_module(module))
    if module.data:
        lines += ["", "datos:", f"  {module.data.hex()}"]
    return lines

def dump_library(lib: Library) -> List[str]:
    lines = [f"id:       {lib.id}", f"exporta:  {', '.join(s.name for s in lib.exports) or '-'}"]
    for c in lib.call_table:
        lines.append(f"llamada:  {c.offset:#06x} -> {c.lib_id}+{c.routine_offset:#06x}")
    lines.append("")
    return lines + disassemble_library(lib)

def write_lines(lines: Iterable[str], path: Union[str, Path]) -> None:
    with open(path, "w", encoding="utf-8") as f:
        for line in lines:
            f.write(line + "\n")

def write_hex(code: bytes, path: Union[str, Path]) -> None:
    write_lines(to_hex_lines(code), path)
