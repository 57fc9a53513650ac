"""
Binding of a byte span to an archive schema.

A schema is a subclass of Archive declaring its resources, the explicit
references between them and the implicit groups:

    class Osm(Archive):
        tags = resources.Vector(Tag)
        stringtable = resources.RawData()

        tag_key = Reference('tags.key_idx', 'stringtable')

Instantiating the schema with a byte span binds it: the framing table is
read and checked against the declarations, while the resources themselves
are only looked at when accessed, so a malformed resource doesn't prevent
using the others. A bound archive never changes and holds no cache: it
can be shared between threads without locking.

The resources never refer to each other, the references are only known to
the archive, that checks the bounds every time one is followed.
"""
import logging
from typing import Dict, List, Optional

from .enum import Compliant
from .exceptions import (
    BindError,
    DanglingReference,
    IntegrityError,
    SchemaError,
    Truncated,
    UnknownDiscriminant,
)
from .framing import read_table
from .meta import MetaChunk
from .properties import Reference
from .resources import Instance, Multivector, RawData, Resource, Vector
from .streams import Stream


logger = logging.getLogger(__name__)


class Archive(metaclass=MetaChunk):

    def __init__(self, source, compliant=Compliant.SCHEMA):
        self.compliant = compliant
        self._stream = Stream(source)
        self._span = self._stream.span
        self._absent = set()

        logger.debug('binding %d bytes to \'%s\'' % (len(self._span), self.__class__.__name__))

        try:
            self._table = read_table(self._span)
            self._check_table()

            if compliant & Compliant.REFERENCES:
                findings = self.validate_references()
                if findings:
                    raise IntegrityError(findings)
        except Exception:
            self._stream.close()
            raise

    def __repr__(self):
        return '<%s(%s)>' % (self.__class__.__name__, ','.join(self.resource_names()))

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        self._stream.close()

    @classmethod
    def open(cls, source, compliant=Compliant.SCHEMA):
        return cls(source, compliant=compliant)

    @classmethod
    def build(cls, sink=None):
        from .builder import ArchiveBuilder
        return ArchiveBuilder(cls, sink=sink)

    @classmethod
    def _prepare(cls):
        '''Check that the declarations are consistent with each other.'''
        framed = set()
        for name in cls._meta.fields:
            for framed_name, _ in cls.get_resource(name).framed_names():
                if framed_name in framed:
                    raise SchemaError(f'\'{framed_name}\' is framed twice in {cls.__name__}')
                framed.add(framed_name)

        for reference in cls._meta.references:
            cls._check_reference(reference)

        for group in cls._meta.groups:
            for name in group.resources:
                if name not in cls._meta.fields:
                    raise SchemaError(f'group \'{group.name}\' refers to unknown resource \'{name}\'')

    @classmethod
    def _check_reference(cls, reference: Reference):
        for name in (reference.resource, reference.target):
            if name not in cls._meta.fields:
                raise SchemaError(f'{reference!r} refers to unknown resource \'{name}\'')

        struct_cls = cls.source_struct(reference)

        try:
            struct_cls.get_field(reference.field)
            if reference.when is not None:
                struct_cls.get_field(reference.when[0])
        except AttributeError as e:
            raise SchemaError(f'{reference!r}: {e}')

    @classmethod
    def get_resource(cls, name) -> Resource:
        if name not in cls._meta.fields:
            raise SchemaError(f'{cls.__name__} has no resource named \'{name}\'')
        return getattr(cls, name)

    @classmethod
    def get_resources(cls) -> List[Resource]:
        return [cls.get_resource(_) for _ in cls._meta.fields]

    @classmethod
    def source_struct(cls, reference: Reference):
        '''The Struct of the records holding the field of the reference.'''
        resource = cls.get_resource(reference.resource)

        if isinstance(resource, Multivector):
            if reference.variant is None:
                raise SchemaError(f'{reference!r} must indicate the variant with \'@\'')
            return resource.variant(reference.variant)

        if reference.variant is not None:
            raise SchemaError(f'{reference!r}: only multivectors have variants')

        if isinstance(resource, RawData):
            raise SchemaError(f'{reference!r}: raw data has no fields')

        return resource.struct_cls

    @classmethod
    def references(cls) -> List[Reference]:
        return list(cls._meta.references)

    @classmethod
    def groups(cls) -> Dict[str, tuple]:
        return {group.name: group.resources for group in cls._meta.groups}

    @classmethod
    def schema_description(cls) -> str:
        lines = [f'archive {cls.__name__}']
        for resource in cls.get_resources():
            optional = ' (optional)' if resource.optional else ''
            lines.append(f'  {resource.name}: {resource.describe()}{optional}')
        for reference in cls._meta.references:
            lines.append(f'  reference {reference.describe()}')
        for group in cls._meta.groups:
            lines.append(f'  group {group.name}: {", ".join(group.resources)}')

        return '\n'.join(lines)

    def _check_table(self):
        declared = set()
        for resource in self.get_resources():
            for framed_name, kind in resource.framed_names():
                declared.add(framed_name)
                entry = self._table.get(framed_name)

                if entry is None:
                    if resource.optional:
                        logger.debug('optional resource \'%s\' is absent' % resource.name)
                        self._absent.add(resource.name)
                        continue
                    raise BindError('resource is missing from the archive', chain=[framed_name])

                if entry.kind != kind:
                    raise BindError(f'expected a {kind.name} but found {entry.kind.name}', chain=[framed_name])

                if entry.schema_crc != resource.schema_crc:
                    if self.compliant & Compliant.SCHEMA:
                        raise BindError('the resource was written with a different schema', chain=[framed_name])
                    logger.warning('schema of \'%s\' doesn\'t match, going on anyway' % framed_name)

        for name in self._table:
            if name not in declared:
                logger.warning('resource \'%s\' is not declared by %s' % (name, self.__class__.__name__))

    def _slice(self, framed_name):
        entry = self._table[framed_name]
        end = entry.offset + entry.size
        if end > len(self._span):
            raise Truncated(f'resource ends at {end} but the archive has {len(self._span)} bytes',
                            chain=[framed_name])

        return self._span[entry.offset:end]

    def resource_names(self) -> List[str]:
        return [_ for _ in self._meta.fields if _ not in self._absent]

    def has_resource(self, name) -> bool:
        return name in self._meta.fields and name not in self._absent

    def resource(self, name):
        '''The view of the resource, None if it's optional and absent.'''
        declaration = self.get_resource(name)
        if name in self._absent:
            return None

        spans = {framed_name: self._slice(framed_name) for framed_name, _ in declaration.framed_names()}

        return declaration.view(spans)

    def load_group(self, name) -> Dict[str, object]:
        '''Views of all the resources of an implicit group.'''
        for group in self._meta.groups:
            if group.name == name:
                return {_: self.resource(_) for _ in group.resources}

        raise KeyError(f'{self.__class__.__name__} has no group named \'{name}\'')

    def _target_count(self, reference: Reference) -> int:
        view = self.resource(reference.target)
        if view is None:
            return 0

        return self.get_resource(reference.target).target_count(view)

    def _iter_records(self, reference: Reference, view, sentinel=False):
        '''Yields (index, record) for the records holding the field of the reference.'''
        resource = self.get_resource(reference.resource)

        if isinstance(resource, Instance):
            records = [(0, view.get())]
        elif isinstance(resource, Vector):
            records = list(enumerate(view))
            if sentinel and resource.sentinel:
                records.append((view.count, view.sentinel))
        else:
            tag = resource.tag_of(reference.variant)
            records = ((i, record) for i, _tag, record in view.iter_records() if _tag == tag)

        yield from records

    def _iter_sources(self, reference: Reference, view):
        '''Yields (index, record) for the records the reference applies to.'''
        # the sentinel closes the ranges so it must be in bounds as well
        for index, record in self._iter_records(reference, view, sentinel=reference.inclusive):
            if reference.applies_to(record):
                yield index, record

    def _conditional_fields(self) -> Dict[tuple, List[Reference]]:
        '''The source fields that are references only for some discriminants,
        with all the edges declared on them.'''
        edges = {}
        for reference in self._meta.references:
            edges.setdefault((reference.resource, reference.variant, reference.field), []).append(reference)

        return {key: references for key, references in edges.items() if all(_.when for _ in references)}

    def _unknown_discriminant(self, references, index, record) -> UnknownDiscriminant:
        reference = references[0]
        discriminant = {_.when[0]: getattr(record, _.when[0]) for _ in references}

        return UnknownDiscriminant(reference.resource, reference.field, index, getattr(record, reference.field),
                                   discriminant, variant=reference.variant)

    def validate_references(self) -> List[DanglingReference]:
        '''Check all the references of all the records, returning all the
        ones out of bounds (an empty list means the archive is sound).

        Records whose discriminant selects none of the edges declared on a
        field are reported as UnknownDiscriminant.'''
        findings = []
        for reference in self._meta.references:
            view = self.resource(reference.resource)
            if view is None:
                continue

            count = self._target_count(reference)
            for index, record in self._iter_sources(reference, view):
                value = getattr(record, reference.field)
                target_index = reference.index(value)
                if target_index is None or reference.in_bounds(target_index, count):
                    continue

                findings.append(DanglingReference(
                    reference.resource, reference.field, index, value,
                    reference.target, count, variant=reference.variant,
                ))

        for references in self._conditional_fields().values():
            view = self.resource(references[0].resource)
            if view is None:
                continue

            for index, record in self._iter_records(references[0], view):
                if not any(_.applies_to(record) for _ in references):
                    findings.append(self._unknown_discriminant(references, index, record))

        logger.debug('validated %d references, %d dangling' % (len(self._meta.references), len(findings)))

        return findings

    def reference_for(self, resource_name, record, field) -> Reference:
        '''The reference edge the field of the record follows.'''
        variant = None
        if isinstance(self.get_resource(resource_name), Multivector):
            variant = record.__class__.__name__

        candidates = []
        for reference in self._meta.references:
            if (reference.resource, reference.variant, reference.field) != (resource_name, variant, field):
                continue
            if reference.applies_to(record):
                return reference
            candidates.append(reference)

        if candidates:
            raise self._unknown_discriminant(candidates, self._record_index(resource_name, record), record)

        raise SchemaError(f'\'{field}\' of {record!r} in \'{resource_name}\' is not a reference')

    def _record_index(self, resource_name, record):
        if isinstance(self.get_resource(resource_name), Multivector):
            return None
        return record.offset // record.size_in_bytes

    def index_of(self, resource_name, record, field) -> Optional[int]:
        '''The index (or offset) the field of the record refers to, after checking
        it's in bounds; None for a null reference.'''
        reference = self.reference_for(resource_name, record, field)
        value = getattr(record, field)
        index = reference.index(value)
        if index is None:
            return None

        count = self._target_count(reference)
        if not reference.in_bounds(index, count):
            raise DanglingReference(resource_name, field, self._record_index(resource_name, record), value,
                                    reference.target, count, variant=reference.variant)

        return index

    def _element(self, target_name, view, index):
        if isinstance(self.get_resource(target_name), RawData):
            return view.string_at(index)

        return view.at(index)

    def resolve(self, resource_name, record, field):
        '''The element the field of the record refers to: a record, a multivector
        item or, for raw data, the string at the offset. None for a null reference.'''
        index = self.index_of(resource_name, record, field)
        if index is None:
            return None

        reference = self.reference_for(resource_name, record, field)
        view = self.resource(reference.target)
        count = self._target_count(reference)
        if index >= count:
            # the end of a range can be stored but not followed
            raise DanglingReference(resource_name, field, self._record_index(resource_name, record), getattr(record, field),
                                    reference.target, count, variant=reference.variant)

        return self._element(reference.target, view, index)

    def iter_range(self, resource_name, i, field=None):
        '''Yields the elements of the target in the range of the element i of a
        vector with a sentinel.'''
        view = self.resource(resource_name)
        field = field or view.range_field
        start, end = view.range_at(i, field)

        reference = self.reference_for(resource_name, view.at(i), field)
        if reference.zero_is_null:
            raise SchemaError(f'{reference!r} cannot be used as a range')

        count = self._target_count(reference)
        for value in (start, end):
            if not 0 <= value <= count or start > end:
                raise DanglingReference(resource_name, field, i, value, reference.target, count)

        target = self.resource(reference.target)
        for index in range(start, end):
            yield self._element(reference.target, target, index)


def bind(span, schema, compliant=Compliant.SCHEMA) -> Archive:
    '''Bind the byte span to the schema (a subclass of Archive).'''
    if not (isinstance(schema, type) and issubclass(schema, Archive)):
        raise TypeError(f'{schema!r} is not an archive schema')

    return schema(span, compliant=compliant)
