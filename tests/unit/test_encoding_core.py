import pytest
from aluasm.parser import parse
from aluasm.semantic import analyze, PlacedInstruction
from aluasm.encoding import encode, encode_instruction
from aluasm.errors import AssemblyError, EncodingError, InternalConsistencyError
from aluasm.ast import Reg, Imm
from aluasm.isa import spec
from aluasm.module import RelocKind, Relocation
from aluasm.writers import to_hex_lines

def _pipe(src: str, **kw):
    program, diags = parse(src, filename="<mem>")
    assert not diags
    res = analyze(program, **kw)
    assert res.ok, res.diagnostics
    return encode(res, name="t")

def test_register_and_immediate_fields():
    m = _pipe(".MAIN\n  put a16[3], -5\n  inc a8[0], 255\n  mov r256[31], r256[0]\n  nop\n")
    # opcode | código de conjunto | índice | inmediato little-endian
    assert to_hex_lines(m.code) == [
        "081103fbffffff00",
        "1c1000ff00000000",
        "0b321f3200000000",
        "ff00000000000000",
    ]
    assert m.relocations == ()

def test_symbolic_operands_are_placeholders_with_relocations():
    m = _pipe(""".DATA
    pad = u8 7
    msg = "hi"
.MAIN
    jmp start
start:
    call lib.f
    putd s16[2], msg
    jmp start
""")
    assert to_hex_lines(m.code) == [
        "0200000000000000",
        "0500000000000000",
        "0940020000000000",
        "0200000000000000",
    ]
    assert m.relocations == (
        Relocation(1, RelocKind.LOCAL_OFFSET, "start"),
        Relocation(9, RelocKind.EXTERNAL_CALL, "lib.f"),
        Relocation(19, RelocKind.DATA_ADDRESS, "msg"),
        Relocation(25, RelocKind.LOCAL_OFFSET, "start"),
    )
    assert m.data == b"\x07hi"

def test_module_tables():
    m = _pipe(""".LIBS
    lib
.MAIN
    call lib.f
.ROUTINE g
inner:
    ret
""")
    assert m.name == "t" and m.entry == 0
    assert [(s.name, s.value) for s in m.exports] == [("g", 8)]
    assert [(s.name, s.value) for s in m.symbols] == [("inner", 8)]
    assert [i.name for i in m.imports] == ["lib.f"]
    assert [(r.alias, r.lib_id) for r in m.libs] == [("lib", None)]
    assert m.isae_manifest == "ALU"

def test_data_initializers():
    m = _pipe('.DATA\n  t = i16 -1, 2\n  s = "ok"\n  b = bytes 0x00dead\n.MAIN\n  ret\n')
    assert m.data == b"\xff\xff\x02\x00ok\x00\xde\xad"

def test_immediate_overflow_raises_instead_of_truncating():
    pi = PlacedInstruction(0, spec("inc"), (Reg("a8", 0), Imm(256)), 3, 5)
    with pytest.raises(EncodingError) as ei:
        encode_instruction(pi, filename="x.aluasm")
    d = ei.value.diagnostic
    assert d.stage == "encoding" and (d.file, d.line, d.col) == ("x.aluasm", 3, 5)

def test_operand_template_mismatch_is_internal():
    pi = PlacedInstruction(0, spec("jmp"), (Imm(1),), 1, 1)
    with pytest.raises(InternalConsistencyError):
        encode_instruction(pi)

def test_encode_refuses_analysis_with_errors():
    program, _ = parse(".MAIN\n  jmp nowhere\n")
    res = analyze(program)
    with pytest.raises(AssemblyError) as ei:
        encode(res)
    assert len(ei.value.diagnostics) == 1

def test_determinism():
    src = ".MAIN\nstart:\n  put a64[1], 42\n  call lib.f\n  jmp start\n"
    assert _pipe(src).to_bytes() == _pipe(src).to_bytes()
