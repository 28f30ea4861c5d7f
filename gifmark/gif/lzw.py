"""
Variable code width LZW as used by the GIF image data blocks.

Codes are packed least significant bit first. The table holds at most 4096
entries (12 bit codes). The encoder emits a clear code whenever the table is
full, the decoder also accepts streams which keep using a full table until
the next clear code ("deferred clear").
"""

from __future__ import annotations

from ..errors import DecodeError

MAX_CODE_SIZE = 12
"Maximum code width in bits"

MAX_TABLE_SIZE = 1 << MAX_CODE_SIZE
"Maximum number of table entries"


def lzw_decode(data: bytes, min_code_size: int, pixel_count: int) -> bytes:
    """
    Decodes a GIF LZW code stream into color indices.

    Decoding stops at the end code, when ``pixel_count`` indices were produced
    or when the data is exhausted, whichever comes first. The result may
    therefore be shorter than ``pixel_count`` for truncated streams.

    :param data: The concatenated image data sub-blocks
    :param min_code_size: The LZW minimum code size stored before the data
    :param pixel_count: The number of indices expected
    :return: The decoded indices, at most ``pixel_count`` bytes
    """
    if not 1 <= min_code_size <= 11:
        raise DecodeError(f"Invalid LZW minimum code size {min_code_size}")
    clear_code = 1 << min_code_size
    end_code = clear_code + 1
    first_free = clear_code + 2

    base_table = [bytes((i,)) for i in range(clear_code)] + [b"", b""]
    table = list(base_table)
    code_size = min_code_size + 1
    code_mask = (1 << code_size) - 1
    prev: bytes | None = None

    out = bytearray()
    bit_buffer = 0
    bit_count = 0
    pos = 0
    length = len(data)

    while len(out) < pixel_count:
        while bit_count < code_size:
            if pos >= length:
                return bytes(out)
            bit_buffer |= data[pos] << bit_count
            pos += 1
            bit_count += 8
        code = bit_buffer & code_mask
        bit_buffer >>= code_size
        bit_count -= code_size

        if code == clear_code:
            table = list(base_table)
            code_size = min_code_size + 1
            code_mask = (1 << code_size) - 1
            prev = None
            continue
        if code == end_code:
            break

        next_code = len(table)
        if code < next_code and code >= first_free or code < clear_code:
            entry = table[code]
            if prev is not None and next_code < MAX_TABLE_SIZE:
                table.append(prev + entry[:1])
        elif code == next_code and prev is not None:
            entry = prev + prev[:1]
            if next_code < MAX_TABLE_SIZE:
                table.append(entry)
        else:
            raise DecodeError(f"Invalid LZW code {code} (next free {next_code})")
        out += entry
        prev = entry

        if len(table) == (1 << code_size) and code_size < MAX_CODE_SIZE:
            code_size += 1
            code_mask = (1 << code_size) - 1

    if len(out) > pixel_count:
        del out[pixel_count:]
    return bytes(out)


class _CodeWriter:
    """Packs variable width codes LSB first."""

    def __init__(self):
        self.out = bytearray()
        self._buffer = 0
        self._count = 0

    def write(self, code: int, size: int) -> None:
        self._buffer |= code << self._count
        self._count += size
        while self._count >= 8:
            self.out.append(self._buffer & 0xFF)
            self._buffer >>= 8
            self._count -= 8

    def flush(self) -> bytes:
        if self._count:
            self.out.append(self._buffer & 0xFF)
            self._buffer = 0
            self._count = 0
        return bytes(self.out)


def lzw_encode(indices: bytes, min_code_size: int) -> bytes:
    """
    Encodes color indices into a GIF LZW code stream.

    :param indices: One palette index per pixel, each < 2 ** min_code_size
    :param min_code_size: The LZW minimum code size (2..8 for GIF files)
    :return: The packed code stream (without sub-block framing)
    """
    if not 2 <= min_code_size <= 11:
        raise ValueError(f"Invalid LZW minimum code size {min_code_size}")
    clear_code = 1 << min_code_size
    end_code = clear_code + 1
    first_free = clear_code + 2

    writer = _CodeWriter()
    code_size = min_code_size + 1
    writer.write(clear_code, code_size)
    if not indices:
        writer.write(end_code, code_size)
        return writer.flush()

    # (prefix code, next index) -> code
    table: dict[int, int] = {}
    next_code = first_free
    prefix = indices[0]
    for k in indices[1:]:
        key = (prefix << 8) | k
        code = table.get(key)
        if code is not None:
            prefix = code
            continue
        writer.write(prefix, code_size)
        if next_code < MAX_TABLE_SIZE:
            table[key] = next_code
            next_code += 1
            if next_code > (1 << code_size) and code_size < MAX_CODE_SIZE:
                code_size += 1
        else:
            writer.write(clear_code, code_size)
            table.clear()
            next_code = first_free
            code_size = min_code_size + 1
        prefix = k
    writer.write(prefix, code_size)
    # the decoder adds one more entry after reading the last code
    if next_code == (1 << code_size) and code_size < MAX_CODE_SIZE:
        code_size += 1
    writer.write(end_code, code_size)
    return writer.flush()
