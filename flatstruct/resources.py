'''
# Resources

A resource is one named region of an archive; the declaration lives in the
body of an Archive, the view is what the archive gives back once bound to
a byte span:

 - Instance: exactly one record (e.g. a header)
 - Vector: records of the same Struct back-to-back, optionally followed by
   one sentinel record so that the range of the item i is [item(i), item(i + 1))
 - Multivector: a stream of items each made of zero or more records of
   different types prefixed by a tag, with a parallel offset index
 - RawData: untyped bytes, usually null terminated strings

Views never copy: the records are Struct views over the span of the archive.
'''
import logging
import zlib
from typing import Dict, List, Tuple, Type

from .codec import decode_field
from .core import Struct, index_type
from .enum import ResourceKind
from .exceptions import SchemaError, Truncated, UnknownVariant
from .meta import FieldBase


logger = logging.getLogger(__name__)


class ResourceDescriptor(object):
    """Access to the view of a resource from a bound archive."""

    def __init__(self, resource: "Resource", name: str):
        self.resource = resource
        self.resource.name = name

    def __get__(self, instance, owner=None):
        if instance is None:
            return self.resource

        return instance.resource(self.resource.name)


class Resource(FieldBase):
    '''Base class for the declaration of a resource.'''
    kind = None

    def __init__(self, optional=False):
        self.optional = optional
        self.name = None

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.name})>'

    def contribute_to_chunk(self, cls, name):
        if name in cls._meta.fields:
            raise SchemaError(f'resource {name} is already present in archive {cls.__name__}')

        setattr(cls, name, ResourceDescriptor(self, name))
        cls._meta.fields.append(name)

    def describe(self) -> str:
        raise NotImplementedError(f'{self.__class__.__name__}.describe() not implemented')

    @property
    def schema_crc(self) -> int:
        return zlib.crc32(self.describe().encode('utf-8'))

    def framed_names(self) -> List[Tuple[str, ResourceKind]]:
        '''The entries this resource occupies into the framing table.'''
        return [(self.name, self.kind)]

    def view(self, spans):
        raise NotImplementedError(f'{self.__class__.__name__}.view() not implemented')

    def target_count(self, view) -> int:
        '''The bound for the references pointing into this resource.'''
        return len(view)


def _check_struct(struct_cls):
    if not (isinstance(struct_cls, type) and issubclass(struct_cls, Struct)):
        raise SchemaError(f'{struct_cls!r} is not a Struct')
    if struct_cls.size_in_bytes == 0:
        raise SchemaError(f'{struct_cls.__name__} has no fields')


class Instance(Resource):
    kind = ResourceKind.INSTANCE

    def __init__(self, struct_cls: Type[Struct], optional=False):
        _check_struct(struct_cls)
        super().__init__(optional=optional)
        self.struct_cls = struct_cls

    def describe(self):
        return f'instance<{self.struct_cls.schema()}>'

    def view(self, spans):
        return InstanceView(self.struct_cls, spans[self.name], name=self.name)


class Vector(Resource):
    kind = ResourceKind.VECTOR

    def __init__(self, struct_cls: Type[Struct], sentinel=False, range_field=None, optional=False):
        _check_struct(struct_cls)
        super().__init__(optional=optional)
        self.struct_cls = struct_cls
        self.sentinel = sentinel

        if range_field is not None:
            try:
                struct_cls.get_field(range_field)
            except AttributeError as e:
                raise SchemaError(f'range_field: {e}')
            if not sentinel:
                raise SchemaError('range_field makes sense only for vectors with a sentinel')
        self.range_field = range_field

    def describe(self):
        extra = ''
        if self.sentinel:
            extra = '+sentinel' + (f'({self.range_field})' if self.range_field else '')
        return f'vector<{self.struct_cls.schema()}>{extra}'

    def view(self, spans):
        return VectorView(self.struct_cls, spans[self.name],
                          sentinel=self.sentinel, range_field=self.range_field, name=self.name)


class Multivector(Resource):
    '''The variants can be passed as a list (the tag is the position) or as
    a dictionary mapping tag to Struct.'''
    kind = ResourceKind.MULTIVECTOR

    def __init__(self, variants, index_width=40, tag_width=8, optional=False):
        super().__init__(optional=optional)

        if tag_width % 8 or not 8 <= tag_width <= 64:
            raise SchemaError(f'the tag must be made of whole bytes, not {tag_width} bits')

        if not isinstance(variants, dict):
            variants = dict(enumerate(variants))
        if not variants:
            raise SchemaError('a multivector needs at least one variant')

        for tag, struct_cls in variants.items():
            _check_struct(struct_cls)
            if not 0 <= tag < (1 << tag_width):
                raise SchemaError(f'tag {tag} doesn\'t fit into {tag_width} bits')

        self.variants: Dict[int, Type[Struct]] = dict(sorted(variants.items()))
        self.index_width = index_width
        self.tag_width = tag_width
        self.index_type = index_type(index_width)

    @property
    def index_name(self):
        return f'{self.name}_index'

    def describe(self):
        variants = ','.join(f'{tag}:{cls.schema()}' for tag, cls in self.variants.items())
        return f'multivector<{self.index_width},{self.tag_width},{variants}>'

    def framed_names(self):
        return [
            (self.name, self.kind),
            (self.index_name, ResourceKind.INDEX),
        ]

    def tag_of(self, variant) -> int:
        '''The tag of a variant given its class or its name.'''
        for tag, struct_cls in self.variants.items():
            if variant is struct_cls or variant == struct_cls.__name__:
                return tag

        raise SchemaError(f'{variant!r} is not a variant of multivector \'{self.name}\'')

    def variant(self, name) -> Type[Struct]:
        return self.variants[self.tag_of(name)]

    def view(self, spans):
        index = VectorView(self.index_type, spans[self.index_name], sentinel=True, name=self.index_name)
        return MultivectorView(self.variants, self.tag_width, spans[self.name], index, name=self.name)


class RawData(Resource):
    kind = ResourceKind.RAW_DATA

    def describe(self):
        return 'raw_data'

    def view(self, spans):
        return RawDataView(spans[self.name], name=self.name)


class InstanceView(object):

    def __init__(self, struct_cls, span, name=None):
        self.struct_cls = struct_cls
        self.name = name

        if len(span) < struct_cls.size_in_bytes:
            raise Truncated(f'instance of {struct_cls.__name__} needs {struct_cls.size_in_bytes} bytes, '
                            f'found {len(span)}', chain=[name])
        self._span = span

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.get()!r})>'

    def __len__(self):
        return 1

    def get(self) -> Struct:
        return self.struct_cls(self._span, 0)

    def at(self, i) -> Struct:
        if i != 0:
            raise IndexError(f'instance \'{self.name}\' has only the element 0')
        return self.get()


class VectorView(object):
    '''Read access to records of fixed size stored back to back.

    If the vector has a sentinel the last record stored is not counted
    as an element, it only closes the range of the last element.'''

    def __init__(self, struct_cls, span, sentinel=False, range_field=None, name=None):
        self.struct_cls = struct_cls
        self.has_sentinel = sentinel
        self.range_field = range_field or struct_cls.leading_field()
        self.name = name

        size = struct_cls.size_in_bytes
        if len(span) % size:
            raise Truncated(f'{len(span)} bytes are not a whole number of {struct_cls.__name__} '
                            f'(size {size})', chain=[name])

        stored = len(span) // size
        if sentinel and stored == 0:
            raise Truncated('the sentinel is missing', chain=[name])

        self._span = span
        self._stored = stored
        self.count = stored - 1 if sentinel else stored

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.struct_cls.__name__}[{self.count}])>'

    def __len__(self):
        return self.count

    def __iter__(self):
        for i in range(self.count):
            yield self._record(i)

    def __getitem__(self, item):
        if isinstance(item, slice):
            return [self._record(_) for _ in range(*item.indices(self.count))]

        if item < 0:
            item += self.count

        return self.at(item)

    def _record(self, i) -> Struct:
        return self.struct_cls(self._span, i * self.struct_cls.size_in_bytes)

    def at(self, i) -> Struct:
        if not 0 <= i < self.count:
            raise IndexError(f'index {i} is out of range for \'{self.name}\' (size {self.count})')

        return self._record(i)

    @property
    def sentinel(self) -> Struct:
        if not self.has_sentinel:
            raise TypeError(f'vector \'{self.name}\' has no sentinel')

        return self._record(self.count)

    def range_at(self, i, field=None) -> Tuple[int, int]:
        '''The couple (start, end) read from the field of the elements i and i + 1.'''
        if not self.has_sentinel:
            raise TypeError(f'vector \'{self.name}\' has no sentinel, ranges are not available')

        if not 0 <= i < self.count:
            raise IndexError(f'index {i} is out of range for \'{self.name}\' (size {self.count})')

        field = field or self.range_field

        return getattr(self._record(i), field), getattr(self._record(i + 1), field)

    def bytes(self) -> memoryview:
        return self._span


class MultivectorView(object):
    '''Each item is a (possibly empty) list of couples (tag, record) whose
    bytes are between offset_at(i) and offset_at(i + 1) of the data.'''

    def __init__(self, variants, tag_width, data, index, name=None):
        self.variants = variants
        self.tag_width = tag_width
        self.tag_size = tag_width // 8
        self.index = index
        self.name = name
        self._data = data

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.name}[{len(self)}])>'

    def __len__(self):
        return self.index.count

    def __iter__(self):
        for i in range(len(self)):
            yield self.item_at(i)

    def __getitem__(self, item):
        if item < 0:
            item += len(self)
        return self.item_at(item)

    def offset_at(self, i) -> int:
        if not 0 <= i <= len(self):
            raise IndexError(f'index {i} is out of range for \'{self.name}\' (size {len(self)})')

        return self.index._record(i).value

    def item_at(self, i) -> List[Tuple[int, Struct]]:
        if not 0 <= i < len(self):
            raise IndexError(f'index {i} is out of range for \'{self.name}\' (size {len(self)})')

        start, end = self.offset_at(i), self.offset_at(i + 1)
        if start > end or end > len(self._data):
            raise Truncated(f'item spans [{start}, {end}) but the data has {len(self._data)} bytes',
                            chain=[self.name, i])

        records = []
        position = start
        while position < end:
            if position + self.tag_size > end:
                raise Truncated(f'tag at {position} crosses the end of the item', chain=[self.name, i])

            tag = decode_field(self._data, position, 0, self.tag_width)
            struct_cls = self.variants.get(tag)
            if struct_cls is None:
                raise UnknownVariant(f'tag {tag} at byte {position} is unknown', chain=[self.name, i])

            position += self.tag_size
            if position + struct_cls.size_in_bytes > end:
                raise Truncated(f'{struct_cls.__name__} at {position} crosses the end of the item',
                                chain=[self.name, i])

            records.append((tag, struct_cls(self._data, position)))
            position += struct_cls.size_in_bytes

        return records

    def at(self, i) -> List[Tuple[int, Struct]]:
        return self.item_at(i)

    def iter_records(self):
        '''Yields (item index, tag, record) for all the records of all the items.'''
        for i in range(len(self)):
            for tag, record in self.item_at(i):
                yield i, tag, record

    def variant_count(self) -> Dict[str, int]:
        '''How many records of each variant the multivector holds.'''
        counts = {cls.__name__: 0 for cls in self.variants.values()}
        for _, tag, _record in self.iter_records():
            counts[self.variants[tag].__name__] += 1

        return counts

    def bytes(self) -> memoryview:
        return self._data


class RawDataView(object):

    SCAN_CHUNK = 256

    def __init__(self, span, name=None):
        self.name = name
        self._span = span

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.name}, {len(self)} bytes)>'

    def __len__(self):
        return len(self._span)

    def bytes(self) -> memoryview:
        return self._span

    def bytes_at(self, offset, terminated=True) -> memoryview:
        '''View of the bytes from offset up to the next null byte (excluded).

        Without a terminator it returns up to the end of the data unless
        terminated is True, in that case it's an error.'''
        if not 0 <= offset < len(self._span):
            raise IndexError(f'offset {offset} is out of range for \'{self.name}\' ({len(self)} bytes)')

        position = offset
        while position < len(self._span):
            chunk = bytes(self._span[position:position + self.SCAN_CHUNK])
            found = chunk.find(b'\x00')
            if found >= 0:
                return self._span[offset:position + found]
            position += len(chunk)

        if terminated:
            raise Truncated(f'no terminator after offset {offset}', chain=[self.name])

        return self._span[offset:]

    def string_at(self, offset, encoding='utf-8', terminated=True) -> str:
        return str(self.bytes_at(offset, terminated=terminated), encoding)
