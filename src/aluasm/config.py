'''
configuración del enlazado: manifiesto JSON de resolución -> ResolutionEnvironment
'''

from __future__ import annotations
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .content_id import DEFAULT_STRATEGY, DigestStrategy, get_strategy, normalize_id
from .errors import ConfigError
from .isa import ALL_ISAE_MASK, isae_mask
from .library import Library
from .linker import ResolutionEnvironment
from .module import ObjectModule

LOGGER = logging.getLogger("aluasm.config")

_KEYS = ("digest", "isae", "aliases", "libraries", "modules")

@dataclass
class ToolchainConfig:
    """Opciones de enlazado. Las rutas relativas se resuelven contra 'base'.

    Ejemplo de manifiesto:

        {
          "digest": "sha256",
          "isae": ["ALU", "BPDIGEST"],
          "aliases": {"std": "sha256:…"},
          "libraries": ["lib/std.alu"],
          "modules": {"util": "build/objects/util.ao"}
        }
    """
    digest: str = DEFAULT_STRATEGY.name
    isae: Optional[List[str]] = None
    aliases: Dict[str, str] = field(default_factory=dict)
    libraries: List[str] = field(default_factory=list)
    modules: Dict[str, str] = field(default_factory=dict)
    base: Path = field(default_factory=Path)

    @property
    def strategy(self) -> DigestStrategy:
        try:
            return get_strategy(self.digest)
        except KeyError as ex:
            raise ConfigError(str(ex.args[0])) from ex

    @property
    def isae_mask(self) -> int:
        """Extensiones admitidas; sin 'isae' se admiten todas."""
        if self.isae is None:
            return ALL_ISAE_MASK
        try:
            return isae_mask(self.isae)
        except KeyError as ex:
            raise ConfigError(str(ex.args[0])) from ex

    def resolve(self, p: str) -> Path:
        path = Path(p)
        return path if path.is_absolute() else self.base / path

    def environment(self) -> ResolutionEnvironment:
        """Carga librerías y módulos en línea (errores de formato -> ObjectFormatError, E/S -> OSError)."""
        try:
            aliases = {k: normalize_id(v) for k, v in self.aliases.items()}
        except ValueError as ex:
            raise ConfigError(f"Manifiesto: {ex}") from ex
        env = ResolutionEnvironment(aliases=aliases, isae=self.isae_mask)
        for p in self.libraries:
            lib = Library.read(self.resolve(p))
            LOGGER.debug("librería %s <- %s", lib.id, p)
            env.add_library(lib)
        for alias, p in self.modules.items():
            LOGGER.debug("módulo en línea %s <- %s", alias, p)
            env.add_module(alias, ObjectModule.read(self.resolve(p)))
        return env

def _expect(data: Dict[str, Any], key: str, kind: type, default: Any) -> Any:
    value = data.get(key, default)
    if not isinstance(value, kind):
        raise ConfigError(f"Manifiesto: '{key}' debe ser {kind.__name__}")
    return value

def parse_manifest(data: Any, *, base: Union[str, Path] = ".") -> ToolchainConfig:
    if not isinstance(data, dict):
        raise ConfigError("Manifiesto: se esperaba un objeto JSON")
    unknown = sorted(set(data) - set(_KEYS))
    if unknown:
        raise ConfigError(f"Manifiesto: claves desconocidas: {', '.join(unknown)}")
    isae = data.get("isae")
    if isae is not None and not (isinstance(isae, list) and all(isinstance(x, str) for x in isae)):
        raise ConfigError("Manifiesto: 'isae' debe ser una lista de nombres")
    aliases = _expect(data, "aliases", dict, {})
    libraries = _expect(data, "libraries", list, [])
    modules = _expect(data, "modules", dict, {})
    for what, values in (("aliases", aliases.values()), ("libraries", libraries), ("modules", modules.values())):
        if not all(isinstance(v, str) for v in values):
            raise ConfigError(f"Manifiesto: los valores de '{what}' deben ser cadenas")
    cfg = ToolchainConfig(
        digest=_expect(data, "digest", str, DEFAULT_STRATEGY.name),
        isae=isae,
        aliases=dict(aliases),
        libraries=list(libraries),
        modules=dict(modules),
        base=Path(base),
    )
    # valida ya el digest y las extensiones
    cfg.strategy
    cfg.isae_mask
    return cfg

def load_manifest(path: Union[str, Path]) -> ToolchainConfig:
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as ex:
        raise ConfigError(f"{path}: JSON inválido ({ex.msg}, línea {ex.lineno})") from ex
    LOGGER.debug("manifiesto %s", path)
    return parse_manifest(data, base=path.parent)
