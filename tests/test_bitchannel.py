import io

import pytest

from bitchannel import BitReader, BitWriter


def test_writer_packs_msb_first_and_pads():
	out = io.BytesIO()
	writer = BitWriter(out)
	writer.write_bits(1, 1)
	writer.write_bits(3, 0b010)
	writer.write_bits(9, 0x1ff)
	writer.close()
	# 1 010 111111111 + 000 padding
	assert out.getvalue() == bytes([0b10101111, 0b11111000])
	assert writer.bits_written == 13


def test_writer_keeps_only_low_bits():
	out = io.BytesIO()
	writer = BitWriter(out)
	writer.write_bits(4, 0xab)
	writer.write_bits(4, 0)
	writer.close()
	assert out.getvalue() == bytes([0xb0])


def test_writer_close_twice_and_write_after_close():
	out = io.BytesIO()
	writer = BitWriter(out)
	writer.write_bits(8, 0x41)
	writer.close()
	writer.close()
	assert out.getvalue() == b'A'
	with pytest.raises(ValueError):
		writer.write_bits(1, 1)


def test_reader_reads_groups_and_reports_end():
	reader = BitReader(io.BytesIO(bytes([0b10101111, 0b11111000])))
	assert reader.read_bits(1) == 1
	assert reader.read_bits(3) == 0b010
	assert reader.read_bits(9) == 0x1ff
	assert reader.read_bits(3) == 0
	assert reader.bits_read == 16
	assert reader.read_bits(1) is None


def test_reader_short_read_returns_none():
	reader = BitReader(io.BytesIO(b'\xff'))
	assert reader.read_bits(32) is None
	assert reader.read_bits(8) == 0xff


def test_reader_reset_rewinds():
	reader = BitReader(io.BytesIO(b'AB'))
	assert reader.read_bits(8) == 0x41
	reader.reset()
	assert reader.read_bits(8) == 0x41
	assert reader.read_bits(8) == 0x42
	assert reader.read_bits(8) is None


def test_reader_spans_chunks():
	data = bytes(range(256)) * 600
	reader = BitReader(io.BytesIO(data))
	got = bytearray()
	while True:
		val = reader.read_bits(8)
		if val is None:
			break
		got.append(val)
	assert bytes(got) == data


def test_writer_flushes_large_output():
	out = io.BytesIO()
	writer = BitWriter(out)
	for i in range(200000):
		writer.write_bits(8, i & 0xff)
	writer.close()
	assert out.getvalue() == bytes(i & 0xff for i in range(200000))
