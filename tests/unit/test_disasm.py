import pytest
from aluasm.assembler import assemble_text
from aluasm.disasm import disassemble, disassemble_word, disassemble_module, disassemble_library
from aluasm.errors import ObjectFormatError
from aluasm.isa import SPEC
from aluasm.linker import ResolutionEnvironment, link

SRC = """.ISAE
    BPDIGEST
.DATA
    msg = "hi"
.MAIN
start:
    put a16[3], -5
    putd s16[0], msg
    sha256 s16[0], r256[2]
    call lib.f
    jmp start
"""

def _module():
    _, diags, _, module = assemble_text(SRC, filename="d.aluasm")
    assert module is not None, diags
    return module

def test_module_listing_shows_symbols():
    text = "\n".join(disassemble_module(_module()))
    assert "start:" in text or ".MAIN:" in text
    assert "put a16[3], -5" in text
    assert "putd s16[0], msg" in text
    assert "sha256 s16[0], r256[2]" in text
    assert "call lib.f" in text
    assert "jmp start" in text

def test_library_listing(tmp_path):
    lib_mod = assemble_text(".ROUTINE f\n  ret\n", filename="lib.aluasm")[3]
    dep = link(lib_mod, ResolutionEnvironment())
    out = link(_module(), ResolutionEnvironment(libraries=[dep], aliases={"lib": dep.id}))
    text = "\n".join(disassemble_library(out))
    assert out.id in text
    assert f"call {dep.id}+0x0000" in text

@pytest.mark.parametrize("mnemonic", sorted(SPEC))
def test_every_mnemonic_disassembles(mnemonic):
    word = bytes([SPEC[mnemonic].opcode]) + bytes(7)
    assert disassemble_word(word).split()[0] == mnemonic

def test_unknown_opcode_and_bad_length():
    assert disassemble_word(bytes([0xEE]) + bytes(7)).startswith(".word")
    with pytest.raises(ObjectFormatError):
        disassemble(bytes(5))
