'''
bit-twiddling (rangos n-bit, empaquetado little-endian, formatos hex)
'''

from __future__ import annotations
from typing import Tuple

# Máscara para 64 bits sin signo (una palabra de instrucción)
U64_MASK = 0xFFFFFFFFFFFFFFFF

def u64(x: int) -> int:
    """Fuerza el valor al rango de 64 bits sin signo."""
    return x & U64_MASK

def is_unsigned_nbit(x: int, n: int) -> bool:
    """Devuelve True si x está en [0, 2^n) (sin signo de n bits)."""
    if n <= 0:
        raise ValueError("n debe ser positivo")
    return 0 <= x < (1 << n)

def is_signed_nbit(x: int, n: int) -> bool:
    """Devuelve True si x está en [-(2^(n-1)), 2^(n-1)-1] (con signo de n bits)."""
    if n <= 0:
        raise ValueError("n debe ser positivo")
    lo = -(1 << (n - 1))
    hi = (1 << (n - 1)) - 1
    return lo <= x <= hi

def nbit_range(n: int, *, signed: bool) -> Tuple[int, int]:
    """Rango inclusivo (lo, hi) representable en n bits."""
    if n <= 0:
        raise ValueError("n debe ser positivo")
    if signed:
        return -(1 << (n - 1)), (1 << (n - 1)) - 1
    return 0, (1 << n) - 1

def fits(x: int, n: int, *, signed: bool) -> bool:
    return is_signed_nbit(x, n) if signed else is_unsigned_nbit(x, n)

def byte_width(bits: int) -> int:
    """Bytes necesarios para un campo de 'bits' bits."""
    return (bits + 7) // 8

def pack_le(value: int, size: int, *, signed: bool = False) -> bytes:
    """Empaqueta value en 'size' bytes little-endian.

    No trunca nunca: si el valor no cabe lanza OverflowError (lo hace int.to_bytes).
    """
    return value.to_bytes(size, "little", signed=signed)

def unpack_le(raw: bytes, *, signed: bool = False) -> int:
    return int.from_bytes(raw, "little", signed=signed)

def to_hex64(x: int, *, prefix: bool = True) -> str:
    """Representación hexadecimal de 64 bits (cadena), con o sin prefijo 0x."""
    s = format(u64(x), "016x")
    return ("0x" + s) if prefix else s

def split_bits(value: int, positions: Tuple[Tuple[int, int], ...]) -> tuple[int, ...]:
    """Extrae campos de bits dados como rangos (hi, lo) inclusivos (base 0)."""
    out = []
    for hi, lo in positions:
        if hi < lo or hi < 0 or lo < 0:
            raise ValueError("rango de bits inválido")
        width = hi - lo + 1
        field = (value >> lo) & ((1 << width) - 1)
        out.append(field)
    return tuple(out)
