'''
desensamblador: palabras de 8 bytes -> texto en la sintaxis del ensamblador
'''

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

from .errors import ObjectFormatError
from .isa import INSTR_SIZE, OPCODE_SIZE, ISpec, SlotKind, spec_by_opcode
from .library import Library
from .module import ObjectModule
from .regs import reg_name, reg_set_by_code
from .symbols import SymbolKind
from .utils import to_hex64, unpack_le

@dataclass(frozen=True)
class DisasmLine:
    offset: int
    word: bytes
    text: str

    def __str__(self) -> str:
        return f"{self.offset:04x}: {self.word.hex(' ')}  {self.text}"

def _operand(sp: ISpec, i: int, raw: bytes, at: int, *, labels: Mapping[int, str],
             data: Mapping[int, str], relocs: Mapping[int, str], libs: Sequence[str]) -> str:
    slot = sp.slots[i]
    if at in relocs:
        return relocs[at]
    if slot.kind is SlotKind.REG:
        try:
            return reg_name(reg_set_by_code(raw[0]), raw[1])
        except ValueError:
            return f"?{raw[0]:#04x}[{raw[1]}]"
    if slot.kind is SlotKind.IMM:
        return str(unpack_le(raw, signed=slot.signed))
    if slot.kind is SlotKind.LABEL:
        v = unpack_le(raw)
        return labels.get(v, f"@{v:#06x}")
    if slot.kind is SlotKind.DATA:
        v = unpack_le(raw)
        return data.get(v, f"data+{v:#06x}")
    index, offset = raw[0], unpack_le(raw[1:])
    lib = libs[index] if index < len(libs) else f"lib#{index}"
    return f"{lib}+{offset:#06x}"

def disassemble_word(word: bytes, *, offset: int = 0, labels: Optional[Mapping[int, str]] = None,
                     data: Optional[Mapping[int, str]] = None, relocs: Optional[Mapping[int, str]] = None,
                     libs: Sequence[str] = ()) -> str:
    """Una palabra; 'relocs' (offset absoluto -> nombre) tiene prioridad sobre los bytes."""
    sp = spec_by_opcode(word[0])
    if sp is None:
        return f".word {to_hex64(unpack_le(word))}"
    ops = []
    pos = OPCODE_SIZE
    for i, slot in enumerate(sp.slots):
        ops.append(_operand(sp, i, word[pos:pos + slot.size], offset + pos, labels=labels or {},
                            data=data or {}, relocs=relocs or {}, libs=libs))
        pos += slot.size
    return f"{sp.mnemonic} {', '.join(ops)}" if ops else sp.mnemonic

def disassemble(code: bytes, **names) -> List[DisasmLine]:
    if len(code) % INSTR_SIZE:
        raise ObjectFormatError(f"Código de {len(code)} bytes: no es múltiplo de {INSTR_SIZE}")
    out = []
    for off in range(0, len(code), INSTR_SIZE):
        word = code[off:off + INSTR_SIZE]
        out.append(DisasmLine(off, word, disassemble_word(word, offset=off, **names)))
    return out

def _code_labels(entry: Optional[int], symbols) -> Dict[int, str]:
    labels: Dict[int, str] = {}
    if entry is not None:
        labels[entry] = ".MAIN"
    for s in symbols:
        if s.kind in (SymbolKind.LOCAL_LABEL, SymbolKind.EXPORTED_LABEL):
            labels.setdefault(s.value, s.name)
    return labels

def _listing(lines: List[DisasmLine], labels: Mapping[int, str]) -> List[str]:
    out = []
    for ln in lines:
        if ln.offset in labels:
            out.append(f"{labels[ln.offset]}:")
        out.append(f"    {ln}")
    return out

def disassemble_module(module: ObjectModule) -> List[str]:
    """Listado de un módulo objeto; los campos pendientes muestran el símbolo de su reubicación."""
    symbols = module.exports + module.symbols
    labels = _code_labels(module.entry, symbols)
    data = {s.value: s.name for s in symbols if s.kind is SymbolKind.DATA_SYMBOL}
    relocs = {r.offset: r.target for r in module.relocations}
    lines = disassemble(module.code, labels=labels, data=data, relocs=relocs)
    return [f"; módulo {module.name} ({module.isae_manifest})"] + _listing(lines, labels)

def disassemble_library(lib: Library) -> List[str]:
    labels = _code_labels(lib.entry, lib.exports)
    lines = disassemble(lib.code, labels=labels, libs=lib.libs)
    head = [f"; librería {lib.name or '-'} {lib.id} ({lib.isae_manifest})"]
    head += [f"; [{i}] {lib_id}" for i, lib_id in enumerate(lib.libs)]
    return head + _listing(lines, labels)
