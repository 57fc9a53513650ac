'''
Sequential writer of archives.

    builder = Osm.build()

    strings = builder.raw_data('stringtable')
    tags = builder.vector('tags')
    tags.append(key_idx=strings.add_string('highway'), value_idx=strings.add_string('primary'))
    ...
    data = builder.finalize()

Every resource is append-only; they can be written in any order as long as,
when finalize() is called, all of them reached their final size: that's the
moment the sentinels are computed from the sizes of the resources they refer
to. A builder has a single owner and cannot be used after finalize(),
whether it succeeded or not.
'''
import contextlib
import logging

from .core import Struct
from .enum import BuilderPhase, ResourceKind
from .exceptions import (
    BuilderError,
    IncompleteResource,
    UnclosedMultivectorItem,
)
from .framing import FramedResource, write_archive
from .resources import Instance, Multivector, RawData, Vector
from .streams import Sink


logger = logging.getLogger(__name__)


def _record_raw(struct_cls, record, values) -> bytes:
    if record is None:
        return struct_cls.from_values(**values).raw

    if not isinstance(record, struct_cls):
        raise TypeError(f'expected a {struct_cls.__name__}, not {record.__class__.__name__}')

    if values:
        record = struct_cls(bytearray(record.raw))
        for name, value in values.items():
            struct_cls.get_field(name)
            setattr(record, name, value)

    return record.raw


class ResourceBuilder(object):

    def __init__(self, declaration, archive_builder):
        self.declaration = declaration
        self.name = declaration.name
        self._archive = archive_builder

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.name})>'

    def _check_usable(self):
        self._archive._check_usable()

    def check_complete(self):
        pass

    def target_count(self) -> int:
        '''The size the references into this resource are checked against.'''
        return len(self)

    def framed(self):
        '''The FramedResource(s) to write into the archive.'''
        return [FramedResource(self.name, self.declaration.kind, self.declaration.schema_crc, bytes(self._data))]


class InstanceBuilder(ResourceBuilder):

    def __init__(self, declaration, archive_builder):
        super().__init__(declaration, archive_builder)
        self._data = None

    def __len__(self):
        return 1

    def set(self, record=None, **values):
        self._check_usable()
        self._data = _record_raw(self.declaration.struct_cls, record, values)

    def check_complete(self):
        if self._data is None:
            raise IncompleteResource('the instance was never set', chain=[self.name])


class VectorBuilder(ResourceBuilder):

    def __init__(self, declaration, archive_builder):
        super().__init__(declaration, archive_builder)
        self.struct_cls = declaration.struct_cls
        self._data = bytearray()
        self._count = 0
        self._sentinel_values = {}

    def __len__(self):
        return self._count

    def append(self, record=None, **values) -> int:
        '''Add a record at the end, returning its index.'''
        self._check_usable()
        self._data += _record_raw(self.struct_cls, record, values)
        self._count += 1

        return self._count - 1

    def extend(self, records):
        for record in records:
            self.append(record)

    def set_sentinel(self, **values):
        '''Explicit values for the fields of the sentinel, the others are
        derived from the references at finalize().'''
        self._check_usable()
        if not self.declaration.sentinel:
            raise BuilderError('the vector has no sentinel', chain=[self.name])

        for name in values:
            self.struct_cls.get_field(name)
        self._sentinel_values.update(values)

    def sentinel(self) -> Struct:
        values = dict(self._sentinel_values)

        for reference in self._archive.schema.references():
            if reference.resource != self.name or not reference.inclusive or reference.when is not None:
                continue
            if reference.field in values:
                continue

            target = self._archive.get(reference.target)
            count = target.target_count() if target is not None else 0
            values[reference.field] = reference.value_for(count)

        range_field = self.declaration.range_field or self.struct_cls.leading_field()
        if range_field not in values:
            raise IncompleteResource(
                f'no value for the field \'{range_field}\' of the sentinel: declare a reference or set it',
                chain=[self.name])

        logger.debug('sentinel of \'%s\': %s' % (self.name, values))

        return self.struct_cls.from_values(**values)

    def framed(self):
        data = bytes(self._data)
        if self.declaration.sentinel:
            data += self.sentinel().raw

        return [FramedResource(self.name, self.declaration.kind, self.declaration.schema_crc, data)]


class MultivectorBuilder(ResourceBuilder):
    '''Each item is opened with start_item(), filled with add() and closed with
    close_item(), that stores the offset of the end of the item into the index.'''

    def __init__(self, declaration, archive_builder):
        super().__init__(declaration, archive_builder)
        self._data = bytearray()
        self._offsets = [0]
        self._open = False

    def __len__(self):
        return len(self._offsets) - 1

    @property
    def is_item_open(self):
        return self._open

    def start_item(self) -> int:
        '''Open a new item, returning its index.'''
        self._check_usable()
        if self._open:
            raise BuilderError(f'item {len(self)} is still open', chain=[self.name])

        self._open = True
        return len(self)

    def add(self, variant, record=None, **values):
        '''Add a record to the open item; the variant is a Struct class (or its name).'''
        self._check_usable()
        if not self._open:
            raise BuilderError('no item is open', chain=[self.name])

        tag = self.declaration.tag_of(variant)
        raw = _record_raw(self.declaration.variants[tag], record, values)

        self._data += tag.to_bytes(self.declaration.tag_width // 8, 'little')
        self._data += raw

    def close_item(self):
        self._check_usable()
        if not self._open:
            raise BuilderError('no item is open', chain=[self.name])

        self._offsets.append(len(self._data))
        self._open = False

    @contextlib.contextmanager
    def item(self):
        '''Open an item for the duration of the with block.'''
        self.start_item()
        yield self
        self.close_item()

    def check_complete(self):
        if self._open:
            raise UnclosedMultivectorItem(f'item {len(self)} was never closed', chain=[self.name])

    def framed(self):
        index_type = self.declaration.index_type
        index = bytearray()
        for offset in self._offsets:
            index += index_type.from_values(value=offset).raw

        return [
            FramedResource(self.name, self.declaration.kind, self.declaration.schema_crc, bytes(self._data)),
            FramedResource(self.declaration.index_name, ResourceKind.INDEX,
                           self.declaration.schema_crc, bytes(index)),
        ]


class RawDataBuilder(ResourceBuilder):

    def __init__(self, declaration, archive_builder):
        super().__init__(declaration, archive_builder)
        self._data = bytearray()
        self._strings = {}

    def __len__(self):
        return len(self._data)

    def append(self, data) -> int:
        '''Add the bytes at the end, returning their offset.'''
        self._check_usable()
        offset = len(self._data)
        self._data += data

        return offset

    def add_string(self, text, encoding='utf-8') -> int:
        '''Add a null terminated string, the same string is stored only once.'''
        key = (text, encoding)
        if key not in self._strings:
            encoded = text.encode(encoding)
            if b'\x00' in encoded:
                raise ValueError(f'{text!r} contains a null byte')
            self._strings[key] = self.append(encoded + b'\x00')

        return self._strings[key]


_BUILDERS = {
    Instance: InstanceBuilder,
    Vector: VectorBuilder,
    Multivector: MultivectorBuilder,
    RawData: RawDataBuilder,
}


class ArchiveBuilder(object):

    def __init__(self, schema, sink=None):
        self.schema = schema
        self.phase = BuilderPhase.OPEN
        self._sink = sink
        self._builders = {}

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.schema.__name__}, {self.phase.name})>'

    def _check_usable(self):
        if self.phase != BuilderPhase.OPEN:
            raise BuilderError(f'the builder cannot be used anymore (phase {self.phase.name})')

    def get(self, name):
        '''The builder of the resource, None if it was never opened.'''
        return self._builders.get(name)

    def open(self, name, kind=None) -> ResourceBuilder:
        self._check_usable()
        declaration = self.schema.get_resource(name)

        if kind is not None and not isinstance(declaration, kind):
            raise BuilderError(f'is a {declaration.__class__.__name__}, not a {kind.__name__}', chain=[name])

        if name in self._builders:
            raise BuilderError('the resource is already open', chain=[name])

        logger.debug('opening \'%s\' of \'%s\'' % (name, self.schema.__name__))

        builder = _BUILDERS[type(declaration)](declaration, self)
        self._builders[name] = builder

        return builder

    def instance(self, name) -> InstanceBuilder:
        return self.open(name, kind=Instance)

    def vector(self, name) -> VectorBuilder:
        return self.open(name, kind=Vector)

    def multivector(self, name) -> MultivectorBuilder:
        return self.open(name, kind=Multivector)

    def raw_data(self, name) -> RawDataBuilder:
        return self.open(name, kind=RawData)

    def finalize(self) -> bytes:
        '''Write the archive into the sink and return its bytes.'''
        self._check_usable()

        try:
            data = self._finalize()
        except Exception:
            self.phase = BuilderPhase.ERROR
            raise

        self.phase = BuilderPhase.DONE

        return data

    def _finalize(self):
        for declaration in self.schema.get_resources():
            builder = self._builders.get(declaration.name)
            if builder is None:
                if declaration.optional:
                    continue
                raise IncompleteResource('the resource was never opened', chain=[declaration.name])

            builder.check_complete()

        framed = []
        for declaration in self.schema.get_resources():
            builder = self._builders.get(declaration.name)
            if builder is not None:
                framed.extend(builder.framed())

        buffer = Sink()
        size = write_archive(buffer, framed)
        data = buffer.getvalue()

        logger.debug('archive \'%s\' finalized: %d resources, %d bytes' % (self.schema.__name__, len(framed), size))

        if self._sink is not None:
            sink = Sink(self._sink)
            try:
                sink.write(data)
            finally:
                sink.close()

        return data
