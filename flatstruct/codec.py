'''
Bit level codec for the fields of a record.

A record is a sequence of fields packed one after the other without any
alignment: the bit ``n`` of a record is the bit ``n % 8`` of its byte
``n // 8`` (least significant bit first), so a field that crosses byte
boundaries is read taking the bytes covering it as a little-endian integer,
shifting right by the bit offset inside the first byte and masking the width.

Signed fields use two's complement and are sign-extended from their top bit.

The heavy lifting (endianess, range checks, sign extension) is delegated
to bitstring.
'''
import logging
from numbers import Integral

from bitstring import Bits

from .exceptions import OutOfRange, Truncated


logger = logging.getLogger(__name__)

MAX_WIDTH = 64


def _check_width(width):
    if not 1 <= width <= MAX_WIDTH:
        raise ValueError(f'field width must be between 1 and {MAX_WIDTH} bits, not {width}')


def _span(record_byte_offset, field_bit_offset, field_bit_width):
    '''Returns the (start, end, shift) of the minimal span of bytes covering the field.'''
    start = record_byte_offset + field_bit_offset // 8
    end = record_byte_offset + (field_bit_offset + field_bit_width + 7) // 8
    return start, end, field_bit_offset % 8


def record_size(widths):
    '''The size in bytes of a record made of fields with the given widths,
    the trailing bits are padding.'''
    return (sum(widths) + 7) // 8


def decode_field(buffer, record_byte_offset, field_bit_offset, field_bit_width, signed=False):
    _check_width(field_bit_width)
    start, end, shift = _span(record_byte_offset, field_bit_offset, field_bit_width)

    if start < 0 or end > len(buffer):
        raise Truncated(
            f'field [{field_bit_offset}:{field_bit_offset + field_bit_width}] at record offset '
            f'{record_byte_offset} needs bytes up to {end} but the buffer has {len(buffer)}')

    word = Bits(bytes=bytes(buffer[start:end])).uintle
    bits = Bits(uint=(word >> shift) & ((1 << field_bit_width) - 1), length=field_bit_width)

    return bits.int if signed else bits.uint


def encode_field(buffer, record_byte_offset, field_bit_offset, field_bit_width, value, signed=False):
    '''Write the value of the field preserving the bits of the buffer outside of it.'''
    _check_width(field_bit_width)

    if not isinstance(value, Integral):
        raise TypeError(f'only integers can be encoded, not {value.__class__.__name__}')

    try:
        if signed:
            bits = Bits(int=int(value), length=field_bit_width)
        else:
            bits = Bits(uint=int(value), length=field_bit_width)
    except (ValueError, OverflowError):
        raise OutOfRange(
            f'{value} doesn\'t fit into a{" signed" if signed else "n unsigned"} field of {field_bit_width} bits')

    start, end, shift = _span(record_byte_offset, field_bit_offset, field_bit_width)

    if start < 0 or end > len(buffer):
        raise Truncated(f'the buffer has {len(buffer)} bytes but the field ends at byte {end}')

    length = (end - start) * 8
    mask = ((1 << field_bit_width) - 1) << shift

    word = Bits(bytes=bytes(buffer[start:end])).uintle
    word = (word & ~mask) | (bits.uint << shift)

    buffer[start:end] = Bits(uintle=word, length=length).bytes
