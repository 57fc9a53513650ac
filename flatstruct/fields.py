"""
A Field is the "fundamental" datatype from the record point of view: an integer
packed in an arbitrary number of bits at a fixed bit offset inside the record.
"""
import logging

from .codec import decode_field, encode_field, MAX_WIDTH
from .exceptions import SchemaError
from .meta import FieldBase


logger = logging.getLogger(__name__)


class FieldDescriptor(object):
    """Wrapper around field access of a Struct: reading decodes the bits
    from the buffer backing the record, writing encodes them back."""

    def __init__(self, field_instance: "Field", field_name: str):
        self.field = field_instance
        self.field.name = field_name

    def __get__(self, instance, owner=None):
        if instance is None:
            return self.field

        return self.field.decode(instance._buffer, instance._offset)

    def __set__(self, instance, value):
        if not instance.writable:
            raise TypeError(f'{instance.__class__.__name__} is a read-only view')

        self.field.encode(instance._buffer, instance._offset, value)


class Field(FieldBase):
    """Base class to subclass from"""

    signed = False

    def __init__(self, width, enum=None):
        if not 1 <= width <= MAX_WIDTH:
            raise SchemaError(f'field width must be between 1 and {MAX_WIDTH} bits, not {width}')

        self.width = width
        self.enum = enum
        self.name = None
        self.bit_offset = None

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.name}:{self.width}@{self.bit_offset})>'

    def contribute_to_chunk(self, cls, name):
        if name in cls._meta.fields:
            raise SchemaError(f'field {name} is already present in class {cls.__name__}')

        setattr(cls, name, FieldDescriptor(self, name))
        cls._meta.fields.append(name)

    def describe(self) -> str:
        '''Short textual description used for the schema fingerprint.'''
        return f'{"i" if self.signed else "u"}{self.width}'

    def decode(self, buffer, offset):
        value = decode_field(buffer, offset, self.bit_offset, self.width, signed=self.signed)

        if not self.enum:
            return value

        try:
            return self.enum(value)
        except ValueError:
            logger.warning(f'enum {self.enum!r} doesn\'t have element with value 0x{value:x} in it')

        return value

    def encode(self, buffer, offset, value):
        if self.enum and isinstance(value, self.enum):
            value = value.value

        encode_field(buffer, offset, self.bit_offset, self.width, value, signed=self.signed)


class UInt(Field):
    """Unsigned integer field. With the "enum" argument the value is mapped into
    the members of a subclass of enum.Enum (discriminants and the like)."""
    pass


class Int(Field):
    """Two's complement signed integer field."""
    signed = True

    def __init__(self, width):
        super().__init__(width)


class Bool(Field):

    def __init__(self):
        super().__init__(1)

    def describe(self):
        return 'bool'

    def decode(self, buffer, offset):
        return bool(super().decode(buffer, offset))


class Padding(Field):
    '''Explicit padding: always zero, cannot be written.'''

    def __init__(self, width):
        super().__init__(width)

    def describe(self):
        return f'pad{self.width}'

    def encode(self, buffer, offset, value):
        raise AttributeError(f'padding field \'{self.name}\' cannot be written')
