import logging


logger = logging.getLogger(__name__)


class FieldBase(object):
    '''Anything that, declared in the body of a Struct or of an Archive,
    needs to register itself with the class.'''

    def contribute_to_chunk(self, cls, name):
        raise NotImplementedError(f'{self.__class__.__name__}.contribute_to_chunk() not implemented')


class Meta(object):
    """Class containing metadata about the abstraction"""

    def __init__(self):
        self.fields = []
        self.references = []
        self.groups = []

    def inherit(self, parent):
        self.fields.extend(_ for _ in parent.fields if _ not in self.fields)
        self.references.extend(parent.references)
        self.groups.extend(parent.groups)


class MetaChunk(type):

    def __new__(cls, names, bases, attrs):
        '''All of this is a big hack, maybe too inspired by how Django does a similar thing!'''
        module = attrs.pop('__module__')
        classcell = attrs.pop('__classcell__', None)

        new_attrs = {
            '__module__': module,
        }
        if classcell is not None:
            new_attrs['__classcell__'] = classcell
        if '__qualname__' in attrs:
            new_attrs['__qualname__'] = attrs.pop('__qualname__')
        new_cls = super(MetaChunk, cls).__new__(cls, names, bases, new_attrs)

        new_cls._meta = Meta()

        # handle inheritance: the descriptors are already reachable via the MRO
        parents = [_ for _ in bases if isinstance(_, MetaChunk)]
        for parent in parents:
            new_cls._meta.inherit(parent._meta)

        for obj_name, obj in attrs.items():
            new_cls.add_to_class(obj_name, obj)

        prepare = getattr(new_cls, '_prepare', None)
        if prepare is not None:
            prepare()

        return new_cls

    def add_to_class(cls, name, value):
        if isinstance(value, FieldBase):
            logger.debug('contribute_to_chunk() found for \'%s.%s\'' % (cls.__name__, name))
            value.contribute_to_chunk(cls, name)
        else:
            setattr(cls, name, value)
