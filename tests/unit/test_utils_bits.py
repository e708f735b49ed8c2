import pytest
from aluasm.utils import (u64, is_unsigned_nbit, is_signed_nbit, nbit_range, fits,
                          byte_width, pack_le, unpack_le, to_hex64, split_bits)

def test_split_bits():
    x = 0b1101_0010
    # fields: [7:5]=110, [3:1]=001
    assert split_bits(x, ((7,5),(3,1))) == (6, 1)
    # código de conjunto de registros: banco | ancho
    assert split_bits(0x31, ((7,4),(3,0))) == (3, 1)

def test_u64_and_formats():
    assert u64(-1) == 0xFFFFFFFFFFFFFFFF
    assert to_hex64(0x1234) == "0x0000000000001234"
    assert to_hex64(0x1234, prefix=False) == "0000000000001234"

def test_nbit_checks():
    assert is_unsigned_nbit(255, 8)
    assert not is_unsigned_nbit(256, 8)
    assert not is_unsigned_nbit(-1, 8)
    assert is_signed_nbit(2**31 - 1, 32)
    assert is_signed_nbit(-2**31, 32)
    assert not is_signed_nbit(2**31, 32)
    assert not is_signed_nbit(-2**31 - 1, 32)
    assert nbit_range(16, signed=False) == (0, 65535)
    assert nbit_range(8, signed=True) == (-128, 127)
    assert fits(-1, 8, signed=True) and not fits(-1, 8, signed=False)

def test_pack_le_never_truncates():
    assert pack_le(0x1234, 2) == b"\x34\x12"
    assert pack_le(-2, 4, signed=True) == b"\xfe\xff\xff\xff"
    assert unpack_le(b"\xfe\xff\xff\xff", signed=True) == -2
    assert byte_width(32) == 4 and byte_width(12) == 2
    with pytest.raises(OverflowError):
        pack_le(0x10000, 2)
