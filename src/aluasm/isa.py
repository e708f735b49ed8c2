'''
tabla formal del ISA (opcodes, plantillas de operandos, extensiones ISAE)
'''

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .regs import BANK_A, BANK_F, BANK_R, BANK_S
from .utils import byte_width

# Cada instrucción ocupa exactamente una palabra de 8 bytes
INSTR_SIZE = 8
OPCODE_SIZE = 1

# Límite de los segmentos (los desplazamientos se codifican en u16)
MAX_SEGMENT = 1 << 16
# Mayor desplazamiento que cabe en un hueco de etiqueta o de dato
MAX_OFFSET = MAX_SEGMENT - 1

# ---- Extensiones del ISA (bit -> nombre) ----

ISAE_ALU = "ALU"
ISAE_BPDIGEST = "BPDIGEST"
ISAE_SECP256K1 = "SECP256K1"
ISAE_ED25519 = "ED25519"

ISAE_BITS: Mapping[str, int] = MappingProxyType({
    ISAE_ALU: 0x01,
    ISAE_BPDIGEST: 0x02,
    ISAE_SECP256K1: 0x04,
    ISAE_ED25519: 0x08,
})
ALL_ISAE_MASK = sum(ISAE_BITS.values())

def isae_mask(names: Iterable[str]) -> int:
    """Convierte nombres de extensiones a máscara; ALU siempre está presente."""
    mask = ISAE_BITS[ISAE_ALU]
    for n in names:
        key = n.strip().upper()
        if key not in ISAE_BITS:
            raise KeyError(f"Extensión ISA desconocida: {n}")
        mask |= ISAE_BITS[key]
    return mask

def isae_names(mask: int) -> List[str]:
    """Nombres de la máscara, en orden de bit."""
    if mask & ~ALL_ISAE_MASK:
        raise ValueError(f"Máscara ISAE con bits desconocidos: {mask:#x}")
    return [name for name, bit in ISAE_BITS.items() if mask & bit]

def isae_manifest(mask: int) -> str:
    """Texto canónico del manifiesto: nombres en orden de bit separados por espacio."""
    return " ".join(isae_names(mask))

# ---- Plantillas de operandos ----

class SlotKind(Enum):
    REG = "reg"
    IMM = "imm"
    LABEL = "label"
    DATA = "data"
    EXTERN = "extern"

@dataclass(frozen=True)
class Slot:
    """Hueco de operando: tipo, bancos/conjuntos admitidos o ancho del inmediato."""
    kind: SlotKind
    banks: Tuple[int, ...] = ()
    sets: Tuple[str, ...] = ()
    bits: int = 0
    signed: bool = False

    @property
    def size(self) -> int:
        if self.kind is SlotKind.REG:
            return 2
        if self.kind is SlotKind.IMM:
            return byte_width(self.bits)
        if self.kind is SlotKind.EXTERN:
            return 3
        return 2   # LABEL / DATA: u16

@dataclass(frozen=True)
class ISpec:
    """Especificación de una instrucción.

    - opcode: byte 0 de la palabra
    - slots: plantilla de operandos en orden de codificación
    - same_set: todos los registros de la instrucción deben ser del mismo conjunto
    - isae: extensión que la define
    """
    mnemonic: str
    opcode: int
    slots: Tuple[Slot, ...]
    same_set: bool = False
    isae: str = ISAE_ALU

    @property
    def operand_bytes(self) -> int:
        return sum(s.size for s in self.slots)

def reg(*banks: int, sets: Tuple[str, ...] = ()) -> Slot:
    return Slot(SlotKind.REG, banks=banks, sets=sets)

def imm(bits: int, *, signed: bool) -> Slot:
    return Slot(SlotKind.IMM, bits=bits, signed=signed)

LABEL = Slot(SlotKind.LABEL)
DATA = Slot(SlotKind.DATA)
EXTERN = Slot(SlotKind.EXTERN)

ANY = (BANK_A, BANK_F, BANK_R, BANK_S)
NUM = (BANK_A, BANK_F)
BITS = (BANK_A, BANK_R)

_SPEC: Dict[str, ISpec] = {}
_BY_OPCODE: Dict[int, ISpec] = {}

def _add(mnemonic: str, opcode: int, slots: List[Slot], *, same_set: bool = False, isae: str = ISAE_ALU):
    sp = ISpec(mnemonic, opcode, tuple(slots), same_set=same_set, isae=isae)
    assert OPCODE_SIZE + sp.operand_bytes <= INSTR_SIZE, mnemonic
    assert opcode not in _BY_OPCODE, mnemonic
    _SPEC[mnemonic] = sp
    _BY_OPCODE[opcode] = sp

# Control de flujo
_add("fail",    0x00, [])
_add("succ",    0x01, [])
_add("jmp",     0x02, [LABEL])
_add("jif",     0x03, [LABEL])
_add("routine", 0x04, [LABEL])
_add("call",    0x05, [EXTERN])
_add("exec",    0x06, [EXTERN])
_add("ret",     0x07, [])

# Carga y movimiento
_add("put",  0x08, [reg(BANK_A, BANK_R), imm(32, signed=True)])
_add("putd", 0x09, [reg(BANK_A, BANK_R, BANK_S), DATA])
_add("clr",  0x0A, [reg(*ANY)])
_add("mov",  0x0B, [reg(*ANY), reg(*ANY)], same_set=True)
_add("swp",  0x0C, [reg(*ANY), reg(*ANY)], same_set=True)
_add("cnv",  0x0D, [reg(*NUM), reg(*NUM)])

# Comparación
_add("eq",  0x10, [reg(*ANY), reg(*ANY)], same_set=True)
_add("gt",  0x11, [reg(*NUM), reg(*NUM)], same_set=True)
_add("lt",  0x12, [reg(*NUM), reg(*NUM)], same_set=True)
_add("ifz", 0x13, [reg(*BITS)])

# Aritmética
_add("add", 0x18, [reg(*NUM), reg(*NUM)], same_set=True)
_add("sub", 0x19, [reg(*NUM), reg(*NUM)], same_set=True)
_add("mul", 0x1A, [reg(*NUM), reg(*NUM)], same_set=True)
_add("div", 0x1B, [reg(*NUM), reg(*NUM)], same_set=True)
_add("inc", 0x1C, [reg(BANK_A), imm(8, signed=False)])
_add("dec", 0x1D, [reg(BANK_A), imm(8, signed=False)])
_add("neg", 0x1E, [reg(*NUM)])
_add("rem", 0x1F, [reg(BANK_A), reg(BANK_A)], same_set=True)

# Operaciones de bits
_add("and", 0x20, [reg(*BITS), reg(*BITS), reg(*BITS)], same_set=True)
_add("or",  0x21, [reg(*BITS), reg(*BITS), reg(*BITS)], same_set=True)
_add("xor", 0x22, [reg(*BITS), reg(*BITS), reg(*BITS)], same_set=True)
_add("not", 0x23, [reg(*BITS)])
_add("shl", 0x24, [reg(BANK_A), imm(16, signed=False)])
_add("shr", 0x25, [reg(BANK_A), imm(16, signed=False)])

# Cadenas de bytes
_add("bcpy", 0x28, [reg(BANK_S), reg(BANK_S)], same_set=True)
_add("blen", 0x29, [reg(BANK_S), reg(BANK_A)])
_add("bcat", 0x2A, [reg(BANK_S), reg(BANK_S), reg(BANK_S)], same_set=True)

# Digest (BPDIGEST)
_add("ripemd", 0x30, [reg(BANK_S), reg(BANK_R, sets=("r160",))], isae=ISAE_BPDIGEST)
_add("sha256", 0x31, [reg(BANK_S), reg(BANK_R, sets=("r256",))], isae=ISAE_BPDIGEST)
_add("sha512", 0x32, [reg(BANK_S), reg(BANK_R, sets=("r512",))], isae=ISAE_BPDIGEST)

# Curvas elípticas
_R256 = reg(BANK_R, sets=("r256",))
_R512 = reg(BANK_R, sets=("r512",))
_add("secpgen", 0x38, [_R256, _R512], isae=ISAE_SECP256K1)
_add("secpmul", 0x39, [_R256, _R512, _R512], isae=ISAE_SECP256K1)
_add("secpadd", 0x3A, [_R512, _R512], isae=ISAE_SECP256K1)
_add("secpneg", 0x3B, [_R512, _R512], isae=ISAE_SECP256K1)
_add("edgen",   0x40, [_R256, _R512], isae=ISAE_ED25519)
_add("edmul",   0x41, [_R256, _R512, _R512], isae=ISAE_ED25519)
_add("edadd",   0x42, [_R512, _R512], isae=ISAE_ED25519)
_add("edneg",   0x43, [_R512, _R512], isae=ISAE_ED25519)

_add("nop", 0xFF, [])

# Vistas de solo lectura; compartidas entre hilos
SPEC: Mapping[str, ISpec] = MappingProxyType(_SPEC)
BY_OPCODE: Mapping[int, ISpec] = MappingProxyType(_BY_OPCODE)

def spec(mnemonic: str) -> ISpec:
    """Devuelve la especificación de una instrucción por mnemónico."""
    m = mnemonic.lower()
    if m not in SPEC:
        raise KeyError(f"Instrucción desconocida: {mnemonic}")
    return SPEC[m]

def spec_by_opcode(opcode: int) -> Optional[ISpec]:
    return BY_OPCODE.get(opcode)
