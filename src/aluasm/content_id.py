'''
identificadores de contenido de librerías: estrategias de digest intercambiables
'''

from __future__ import annotations
import hashlib
import re
from typing import Dict, Optional

# Todas las estrategias producen digests de 32 bytes
DIGEST_SIZE = 32

_ID_RE = re.compile(r"^(?P<algo>[a-z][a-z0-9]*):(?P<hex>[0-9a-fA-F]+)$")

class DigestStrategy:
    """Calcula y representa ids '<algoritmo>:<hex>'.

    El prefijo hace el id autodescriptivo: al cargar una librería se elige la estrategia
    a partir de él para verificar que el id corresponde al contenido.
    """

    def __init__(self, name: str, algorithm: str, **params):
        self.name = name
        self.algorithm = algorithm
        self.params = params

    def digest(self, payload: bytes) -> bytes:
        h = getattr(hashlib, self.algorithm)(**self.params)
        h.update(payload)
        return h.digest()

    def render(self, digest: bytes) -> str:
        if len(digest) != DIGEST_SIZE:
            raise ValueError(f"digest de {len(digest)} bytes (se esperaban {DIGEST_SIZE})")
        return f"{self.name}:{digest.hex()}"

    def content_id(self, payload: bytes) -> str:
        return self.render(self.digest(payload))

    def __repr__(self) -> str:
        return f"DigestStrategy({self.name!r})"

SHA256 = DigestStrategy("sha256", "sha256")
BLAKE2B = DigestStrategy("blake2b256", "blake2b", digest_size=DIGEST_SIZE)

STRATEGIES: Dict[str, DigestStrategy] = {s.name: s for s in (SHA256, BLAKE2B)}
DEFAULT_STRATEGY = SHA256

def get_strategy(name: str) -> DigestStrategy:
    """Estrategia por nombre ('sha256', 'blake2b256') o KeyError."""
    if name not in STRATEGIES:
        raise KeyError(f"Algoritmo de digest desconocido: {name} (disponibles: {', '.join(STRATEGIES)})")
    return STRATEGIES[name]

def split_content_id(text: str) -> Optional[tuple[str, bytes]]:
    """'sha256:ab…' -> ('sha256', digest) o None si no está bien formado."""
    m = _ID_RE.match(text.strip())
    if not m or len(m.group("hex")) != DIGEST_SIZE * 2:
        return None
    return m.group("algo"), bytes.fromhex(m.group("hex"))

def is_content_id(text: str) -> bool:
    parts = split_content_id(text)
    return parts is not None and parts[0] in STRATEGIES

def strategy_for_id(text: str) -> DigestStrategy:
    """Estrategia que produjo el id, según su prefijo."""
    parts = split_content_id(text)
    if parts is None:
        raise ValueError(f"Id de librería mal formado: {text}")
    return get_strategy(parts[0])

def normalize_id(text: str) -> str:
    """Forma canónica (hex en minúsculas)."""
    parts = split_content_id(text)
    if parts is None:
        raise ValueError(f"Id de librería mal formado: {text}")
    return f"{parts[0]}:{parts[1].hex()}"
