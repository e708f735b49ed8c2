# src/aluasm/encoding.py
from __future__ import annotations
import logging
from pathlib import PurePath
from typing import List, Optional, Tuple

from .ast import DataRef, Imm, LabelRef, LibCall, Reg
from .errors import AssemblyError, EncodingError, InternalConsistencyError
from .isa import INSTR_SIZE, SlotKind
from .module import Import, LibRef, ModuleSymbol, ObjectModule, RelocKind, Relocation
from .regs import reg_set
from .semantic import DATA_TYPES, AnalysisResult, DataItem, PlacedInstruction, hex_blob
from .symbols import SymbolKind
from .utils import fits, nbit_range, pack_le

LOGGER = logging.getLogger("aluasm.encoding")

# Tipo de reubicación según el hueco del operando
_RELOC_FOR_SLOT = {
    SlotKind.LABEL: RelocKind.LOCAL_OFFSET,
    SlotKind.DATA: RelocKind.DATA_ADDRESS,
    SlotKind.EXTERN: RelocKind.EXTERNAL_CALL,
}

# ---------------- Instrucciones ----------------

def encode_instruction(pi: PlacedInstruction, *, filename: Optional[str] = None) -> Tuple[bytes, List[Relocation]]:
    """Palabra de 8 bytes + reubicaciones de sus operandos simbólicos.

    Los operandos simbólicos se escriben como ceros: el enlazador es el único que parchea.
    """
    sp = pi.spec
    word = bytearray(INSTR_SIZE)
    word[0] = sp.opcode
    relocs: List[Relocation] = []
    pos = 1
    if len(pi.operands) != len(sp.slots):
        raise InternalConsistencyError(f"{sp.mnemonic}: {len(pi.operands)} operandos para {len(sp.slots)} huecos",
                                       line=pi.line, col=pi.col, file=filename)
    for op, slot in zip(pi.operands, sp.slots):
        if slot.kind is SlotKind.REG and isinstance(op, Reg):
            rs = reg_set(op.set_name)
            word[pos] = rs.code
            word[pos + 1] = op.index
        elif slot.kind is SlotKind.IMM and isinstance(op, Imm):
            if not fits(op.value, slot.bits, signed=slot.signed):
                lo, hi = nbit_range(slot.bits, signed=slot.signed)
                raise EncodingError(f"{sp.mnemonic}: inmediato {op.value} desborda {slot.bits} bits ({lo}..{hi})",
                                    line=pi.line, col=pi.col, file=filename)
            word[pos:pos + slot.size] = pack_le(op.value, slot.size, signed=slot.signed)
        elif (slot.kind is SlotKind.LABEL and isinstance(op, LabelRef)
              or slot.kind is SlotKind.DATA and isinstance(op, DataRef)
              or slot.kind is SlotKind.EXTERN and isinstance(op, LibCall)):
            relocs.append(Relocation(pi.offset + pos, _RELOC_FOR_SLOT[slot.kind], op.name))
        else:
            raise InternalConsistencyError(f"{sp.mnemonic}: operando '{op}' no encaja en hueco {slot.kind.value}",
                                           line=pi.line, col=pi.col, file=filename)
        pos += slot.size
    return bytes(word), relocs

# ---------------- Datos ----------------

def encode_data(item: DataItem, *, filename: Optional[str] = None) -> bytes:
    d = item.decl
    if d.type_name == "str":
        out = b"".join(v for v in d.values if isinstance(v, bytes))
    elif d.type_name == "bytes":
        blobs = [hex_blob(v) for v in d.values]
        if any(b is None for b in blobs):
            raise InternalConsistencyError(f"'bytes' inválido en {d.name}", line=d.line, col=d.col, file=filename)
        out = b"".join(blobs)
    else:
        width, signed = DATA_TYPES[d.type_name]
        parts = []
        for v in d.values:
            if not fits(v.value, width * 8, signed=signed):
                raise EncodingError(f"{d.name}: {v.value} desborda {d.type_name}", line=d.line, col=d.col, file=filename)
            parts.append(pack_le(v.value, width, signed=signed))
        out = b"".join(parts)
    if len(out) != item.size:
        raise InternalConsistencyError(f"{d.name}: {len(out)} bytes codificados, {item.size} reservados",
                                       line=d.line, col=d.col, file=filename)
    return out

# ---------------- Codificador principal ----------------

def encode(analysis: AnalysisResult, *, name: Optional[str] = None) -> ObjectModule:
    """Programa anotado → ObjectModule. Falla al primer defecto con EncodingError."""
    if not analysis.ok:
        raise AssemblyError(analysis.diagnostics)
    filename = analysis.filename
    if name is None:
        name = PurePath(filename).stem if filename else "module"

    code = bytearray(analysis.code_size)
    relocs: List[Relocation] = []
    for pi in analysis.code:
        word, rel = encode_instruction(pi, filename=filename)
        code[pi.offset:pi.offset + INSTR_SIZE] = word
        relocs.extend(rel)
    if len(analysis.code) * INSTR_SIZE != analysis.code_size:
        raise InternalConsistencyError(f"{len(analysis.code)} instrucciones para {analysis.code_size} bytes de código",
                                       file=filename)

    data = b"".join(encode_data(item, filename=filename) for item in analysis.data)

    st = analysis.symtab
    module = ObjectModule(
        name=name,
        isae=analysis.isae,
        code=bytes(code),
        data=data,
        exports=tuple(ModuleSymbol(s.name, s.kind, s.value) for s in st.of_kind(SymbolKind.EXPORTED_LABEL)),
        symbols=tuple(ModuleSymbol(s.name, s.kind, s.value)
                      for s in st.of_kind(SymbolKind.LOCAL_LABEL, SymbolKind.DATA_SYMBOL)),
        imports=tuple(Import(s.name) for s in st.of_kind(SymbolKind.IMPORTED_EXTERNAL)),
        libs=tuple(LibRef(alias, lib_id) for alias, lib_id in analysis.libs.items()),
        relocations=tuple(sorted(relocs, key=lambda r: r.offset)),
        entry=analysis.entry,
    )
    LOGGER.info("%s: %d bytes de código, %d de datos, %d reubicaciones",
                name, len(module.code), len(module.data), len(module.relocations))
    return module
