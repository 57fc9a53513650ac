import logging
from typing import Optional, Tuple

from .exceptions import SchemaError
from .meta import FieldBase


logger = logging.getLogger(__name__)


class Reference(FieldBase):
    '''This declares that a field of the records of a resource is an index
    (or a byte offset) into another resource of the same archive.

    It's declared in the body of the Archive like

        class Osm(Archive):
            tags = resources.Vector(Tag)
            stringtable = resources.RawData()

            tag_key = Reference('tags.key_idx', 'stringtable')

    The syntax for the source expression is inspired from module resolution:

     - 'resource.field' indicates the field of the records of a vector (or an instance)
     - 'resource.@Variant.field' indicates the field of a given variant of a multivector

    The edge doesn't own anything, it's a lookup contract checked when the
    reference is followed or when all the references are validated:

     - inclusive: the value can be equal to the size of the target, this is
       the case for the first index of a range closed by a sentinel
     - zero_is_null: zero means "no reference" and the real indices are shifted by one
     - when: a couple (field name, value) that restricts the edge to the records
       having that discriminant
    '''

    def __init__(self, source: str, target: str, inclusive=False, zero_is_null=False,
                 when: Optional[Tuple[str, object]] = None):
        self.expression = source
        self.target = target
        self.inclusive = inclusive
        self.zero_is_null = zero_is_null
        self.when = when
        self.name = None

        self.resource, self.variant, self.field = self._parse(source)

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.expression} -> {self.target})>'

    def _parse(self, expression):
        components = expression.split('.')

        if len(components) == 2 and all(components):
            return components[0], None, components[1]

        if len(components) == 3 and components[1].startswith('@') and all(components):
            return components[0], components[1][1:], components[2]

        raise SchemaError(f'\'{expression}\' is not a valid reference: use \'resource.field\' '
                          'or \'resource.@Variant.field\'')

    def contribute_to_chunk(self, cls, name):
        self.name = name
        cls._meta.references.append(self)
        setattr(cls, name, self)

    def describe(self) -> str:
        flags = []
        if self.inclusive:
            flags.append('inclusive')
        if self.zero_is_null:
            flags.append('zero_is_null')
        if self.when:
            flags.append('when %s=%s' % self.when)
        return f'{self.expression}->{self.target}' + (f'[{",".join(flags)}]' if flags else '')

    def applies_to(self, record) -> bool:
        if self.when is None:
            return True

        name, expected = self.when
        return getattr(record, name) == expected

    def index(self, value) -> Optional[int]:
        '''The index the value refers to, None if it's a null reference.'''
        if not self.zero_is_null:
            return value

        return None if value == 0 else value - 1

    def value_for(self, index) -> int:
        '''Inverse of index(): what to store to refer to the index.'''
        return index + 1 if self.zero_is_null else index

    def in_bounds(self, index, target_count) -> bool:
        if index < 0:
            return False
        return index < target_count or (self.inclusive and index == target_count)


class ImplicitGroup(FieldBase):
    '''Resources that need to be loaded together even if they are not declared
    as a single composite resource (e.g. a vector whose items own the items of a
    multivector with the same index).

    The archive doesn't give any meaning to the group, it only keeps it as
    metadata for the accessors built on top of it.'''

    def __init__(self, *resources):
        if len(resources) < 2:
            raise SchemaError('an implicit group needs at least two resources')

        self.resources = tuple(resources)
        self.name = None

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.name}: {", ".join(self.resources)})>'

    def contribute_to_chunk(self, cls, name):
        self.name = name
        cls._meta.groups.append(self)
        setattr(cls, name, self)
