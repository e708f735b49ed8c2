import pytest
from aluasm.content_id import BLAKE2B
from aluasm.errors import ObjectFormatError
from aluasm.library import Library, CallSite
from aluasm.module import ModuleSymbol
from aluasm.symbols import SymbolKind

DEP = "sha256:" + "11" * 32

def _lib(**kw) -> Library:
    args = dict(isae=1, code=bytes.fromhex("0500000000000000"), data=b"hi", libs=[DEP],
                exports=[ModuleSymbol("f", SymbolKind.EXPORTED_LABEL, 0)],
                call_table=[CallSite(1, DEP, 0)], entry=0, name="demo")
    args.update(kw)
    return Library.build(**args)

def test_id_depends_only_on_resolved_content():
    a = _lib()
    assert a.verify()
    assert _lib(name="other", exports=(), entry=None).id == a.id
    assert _lib(data=b"ho").id != a.id
    assert _lib(isae=3).id != a.id
    assert _lib(libs=["sha256:" + "22" * 32], call_table=[]).id != a.id
    assert _lib(strategy=BLAKE2B).id.startswith("blake2b256:")

def test_file_roundtrip(tmp_path):
    a = _lib(strategy=BLAKE2B)
    path = tmp_path / "demo.alu"
    a.write(path)
    b = Library.read(path)
    assert b == a
    assert b.export_offset("f") == 0 and b.export_offset("g") is None
    assert b.call_table == (CallSite(1, DEP, 0),)

def test_tampered_bytes_are_rejected():
    raw = bytearray(_lib().to_bytes())
    i = raw.index(b"hi")
    raw[i] = ord("H")
    with pytest.raises(ObjectFormatError):
        Library.from_bytes(bytes(raw))

def test_wrong_magic():
    raw = _lib().to_bytes()
    with pytest.raises(ObjectFormatError):
        Library.from_bytes(b"ALUO" + raw[4:])
