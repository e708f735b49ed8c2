'''
bancos y conjuntos de registros (a16, r256, s16...), validaciones y códigos
'''

from __future__ import annotations
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping, Tuple

from .utils import split_bits

# Bancos: nibble alto del código de conjunto
BANK_A = 1   # aritmética entera
BANK_F = 2   # coma flotante
BANK_R = 3   # registros generales (no aritméticos)
BANK_S = 4   # cadenas de bytes

BANK_NAMES: Dict[int, str] = {BANK_A: "A", BANK_F: "F", BANK_R: "R", BANK_S: "S"}

@dataclass(frozen=True)
class RegSet:
    """Conjunto de registros de un banco con un ancho concreto (p.ej. a16)."""
    name: str
    bank: int
    width_class: int   # 0..15, nibble bajo del código
    bits: int          # ancho del registro en bits
    count: int         # número de registros del conjunto

    @property
    def code(self) -> int:
        return (self.bank << 4) | self.width_class

def _table() -> Mapping[str, RegSet]:
    out: Dict[str, RegSet] = {}
    for i, bits in enumerate((8, 16, 32, 64, 128, 256, 512, 1024)):
        out[f"a{bits}"] = RegSet(f"a{bits}", BANK_A, i, bits, 32)
    for i, (name, bits) in enumerate((("f16b", 16), ("f16", 16), ("f32", 32), ("f64", 64),
                                      ("f80", 80), ("f128", 128), ("f256", 256), ("f512", 512))):
        out[name] = RegSet(name, BANK_F, i, bits, 32)
    for i, bits in enumerate((128, 160, 256, 512, 1024, 2048, 4096, 8192)):
        out[f"r{bits}"] = RegSet(f"r{bits}", BANK_R, i, bits, 32)
    out["s16"] = RegSet("s16", BANK_S, 0, 16, 16)
    return MappingProxyType(out)

# Tabla inmutable durante toda la vida del proceso
REG_SETS: Mapping[str, RegSet] = _table()
_BY_CODE: Mapping[int, RegSet] = MappingProxyType({rs.code: rs for rs in REG_SETS.values()})

def reg_set(token: str) -> RegSet:
    """Devuelve el conjunto por nombre ('a16', 'R256'...) o lanza ValueError."""
    t = token.strip().lower()
    if t not in REG_SETS:
        raise ValueError(f"Conjunto de registros inválido: {token}")
    return REG_SETS[t]

def reg_set_by_code(code: int) -> RegSet:
    """Inverso de RegSet.code (usado al desensamblar)."""
    if code not in _BY_CODE:
        bank, width = split_bits(code, ((7, 4), (3, 0)))
        raise ValueError(f"Código de registro desconocido: banco {bank}, ancho {width}")
    return _BY_CODE[code]

def check_index(rs: RegSet, index: int) -> None:
    """Lanza ValueError si el índice no existe en el conjunto."""
    if not 0 <= index < rs.count:
        raise ValueError(f"Índice de registro fuera de rango: {rs.name}[{index}] (0..{rs.count - 1})")

def reg_name(rs: RegSet, index: int) -> str:
    return f"{rs.name}[{index}]"

def banks_label(banks: Tuple[int, ...]) -> str:
    return "/".join(BANK_NAMES[b] for b in banks)
