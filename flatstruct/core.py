"""
Core module for the abstraction of a bit-packed record

"""
import logging
from functools import lru_cache
from typing import Dict, List, Tuple

from .codec import record_size
from .exceptions import Truncated
from .fields import Field, Padding, UInt
from .meta import MetaChunk


logger = logging.getLogger(__name__)


class Struct(metaclass=MetaChunk):
    """
    A record made of fields packed one after the other at the bit level, like

        class Tag(Struct):
            key_idx = fields.UInt(32)
            value_idx = fields.UInt(32)

    The bit offsets are assigned in declaration order, the size in bytes is the
    number of bits rounded up: the trailing bits are padding and always zero.

    An instance is a view over a buffer at a given byte offset, nothing is
    copied: reading an attribute decodes the field from the buffer, writing
    it (only for writable buffers) encodes it in place.
    """
    size_in_bits = 0
    size_in_bytes = 0
    padding_bits = 0

    def __init__(self, buffer=None, offset=0):
        if buffer is None:
            buffer = bytearray(self.size_in_bytes)
            offset = 0

        if offset < 0 or offset + self.size_in_bytes > len(buffer):
            raise Truncated(
                f'{self.__class__.__name__} needs {self.size_in_bytes} bytes at offset {offset} '
                f'but the buffer has {len(buffer)}')

        self._buffer = buffer
        self._offset = offset

    @classmethod
    def _prepare(cls):
        offset = 0
        for _, field in cls.get_fields():
            field.bit_offset = offset
            offset += field.width

        cls.size_in_bits = offset
        cls.size_in_bytes = record_size([offset])
        cls.padding_bits = cls.size_in_bytes * 8 - offset

    @classmethod
    def from_values(cls, **values):
        record = cls()
        for name, value in values.items():
            if name not in cls._meta.fields:
                raise AttributeError(f'{cls.__name__} has no field named \'{name}\'')
            setattr(record, name, value)

        return record

    @classmethod
    def get_fields(cls) -> List[Tuple[str, Field]]:
        '''It returns a list of couples (name, field) for each field.'''
        return [(_, getattr(cls, _)) for _ in cls._meta.fields]

    @classmethod
    def get_field(cls, name) -> Field:
        if name not in cls._meta.fields:
            raise AttributeError(f'{cls.__name__} has no field named \'{name}\'')
        return getattr(cls, name)

    @classmethod
    def leading_field(cls) -> str:
        for name, field in cls.get_fields():
            if not isinstance(field, Padding):
                return name

        raise AttributeError(f'{cls.__name__} has no fields')

    @classmethod
    def layout(cls) -> Dict[str, Tuple[int, int]]:
        return {name: (field.bit_offset, field.width) for name, field in cls.get_fields()}

    @classmethod
    def schema(cls) -> str:
        fields = ','.join(f'{name}:{field.describe()}' for name, field in cls.get_fields())
        return f'{cls.__name__}{{{fields}}}'

    @property
    def writable(self):
        if isinstance(self._buffer, memoryview):
            return not self._buffer.readonly

        return isinstance(self._buffer, bytearray)

    @property
    def offset(self):
        return self._offset

    @property
    def raw(self) -> bytes:
        return bytes(self._buffer[self._offset:self._offset + self.size_in_bytes])

    def as_dict(self):
        return {
            name: getattr(self, name)
            for name, field in self.get_fields() if not isinstance(field, Padding)
        }

    def __eq__(self, other):
        if not isinstance(other, Struct):
            return NotImplemented

        return self.__class__ is other.__class__ and self.raw == other.raw

    def __hash__(self):
        return hash((self.__class__, self.raw))

    def __repr__(self):
        msg = []
        for field_name, value in self.as_dict().items():
            msg.append('%s=%s' % (field_name, value))
        return '<%s(%s)>' % (self.__class__.__name__, ','.join(msg))


@lru_cache(maxsize=None)
def index_type(width):
    '''Record with a single unsigned field named "value", used for the offset
    indices of the multivectors.'''
    return MetaChunk(f'IndexType{width}', (Struct,), {
        '__module__': __name__,
        'value': UInt(width),
    })
