class FlatstructException(Exception):
    '''Base class to extend in order to throw exception in flatstruct.

    Besides the message it takes the chain of the components (resource names,
    indices, field names) that locates where the error happened.
    '''

    def __init__(self, message='', chain=None):
        self.chain = list(chain) if chain else []
        super().__init__(message)

    def __str__(self):
        message = super().__str__()
        if not self.chain:
            return message

        location = '.'.join(str(_) for _ in self.chain)
        return f'{location}: {message}' if message else location


class SchemaError(FlatstructException):
    '''The declaration of a record or an archive is not consistent.'''
    pass


class OutOfRange(FlatstructException, ValueError):
    '''The value doesn't fit the bit width declared for the field.'''
    pass


class Truncated(FlatstructException):
    '''The byte span is shorter than what the resource declares or implies.'''
    pass


class UnknownVariant(FlatstructException):
    '''A multivector tag is not part of the variants of the schema.

    This is unrecoverable for the item: the size of the payload following
    the tag cannot be known.'''
    pass


class DanglingReference(FlatstructException):
    '''A reference field points outside of its target resource.'''

    def __init__(self, source, field, index, value, target, target_count, variant=None, message=None):
        self.source = source
        self.field = field
        self.index = index
        self.value = value
        self.target = target
        self.target_count = target_count
        self.variant = variant

        chain = [source, index]
        if variant:
            chain.append(variant)
        chain.append(field)

        super().__init__(
            message or f'value {value} is out of bounds for \'{target}\' (size {target_count})',
            chain=chain,
        )

    def __eq__(self, other):
        if not isinstance(other, DanglingReference):
            return NotImplemented
        return self.key == other.key

    def __hash__(self):
        return hash(self.key)

    @property
    def key(self):
        return (self.source, self.index, self.variant, self.field, self.value, self.target)


class UnknownDiscriminant(DanglingReference):
    '''The field is a reference only for some values of a discriminant and the
    record has none of them: there is no target to check the value against.'''

    def __init__(self, source, field, index, value, discriminant, variant=None):
        self.discriminant = discriminant

        found = ','.join(f'{name}={current!r}' for name, current in discriminant.items())
        super().__init__(source, field, index, value, None, 0, variant=variant,
                         message=f'no reference applies to the record ({found})')


class BindError(FlatstructException):
    '''The byte span doesn't contain a usable archive for the schema.'''
    pass


class IntegrityError(BindError):
    '''Eager validation found references out of bounds; all of them are in findings.'''

    def __init__(self, findings):
        self.findings = list(findings)
        super().__init__(f'{len(self.findings)} dangling reference(s) found')


class BuilderError(FlatstructException):
    pass


class IncompleteResource(BuilderError):
    pass


class UnclosedMultivectorItem(BuilderError):
    pass
