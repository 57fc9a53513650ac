import io
import logging
import mmap
import os


logger = logging.getLogger(__name__)


class Stream(object):
    '''This is a simple wrapper around bytes/file objects to uniform
    them as a read-only byte span (a memoryview) that the archive can
    slice without copying.

    A path is memory mapped, a file object is mapped if possible otherwise
    read in memory.'''

    def __init__(self, obj):
        '''Here we normalize the object in order to be accessed as a memoryview'''
        self._type = type(obj)
        self.obj = obj
        self._mmap = None
        self._file = None

        if isinstance(obj, os.PathLike):
            self.obj = os.fspath(obj)

        init_method_name = 'init_%s' % self.obj.__class__.__name__
        init_method = getattr(self, init_method_name, self.init_file)

        self.span = init_method()

    def __len__(self):
        return len(self.span)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def init_str(self):
        '''We think this is a path'''
        logger.debug('opening path \'%s\'' % self.obj)
        self._file = open(self.obj, 'rb')
        return self._map(self._file)

    def init_bytes(self):
        '''We think these are raw bytes'''
        return memoryview(self.obj)

    def init_bytearray(self):
        return memoryview(self.obj).toreadonly()

    def init_memoryview(self):
        return self.obj.toreadonly()

    def init_file(self):
        '''Whatever has a fileno() or a read() method'''
        if not hasattr(self.obj, 'read'):
            raise ValueError('\'%s\' cannot be used as a byte span' % self.obj.__class__.__name__)

        return self._map(self.obj)

    def _map(self, fp):
        try:
            fileno = fp.fileno()
        except (AttributeError, io.UnsupportedOperation):
            return memoryview(fp.read())

        if os.fstat(fileno).st_size == 0:
            # empty files cannot be mapped
            return memoryview(b'')

        self._mmap = mmap.mmap(fileno, 0, access=mmap.ACCESS_READ)
        return memoryview(self._mmap)

    def close(self):
        '''Release the span and close the file.

        If records or views still point into a mapped file the mapping is
        left to them: it's unmapped when the last one is garbage collected.'''
        try:
            self.span.release()
            if self._mmap is not None:
                try:
                    self._mmap.close()
                except BufferError:
                    logger.debug('mapping of \'%s\' still in use, leaving it to the views' % self.obj)
                self._mmap = None
        finally:
            if self._file is not None:
                self._file.close()
                self._file = None


class Sink(object):
    '''Append-only destination for a builder: a path, a binary file object or,
    by default, an in-memory buffer.'''

    def __init__(self, obj=None):
        self._owned = False
        if obj is None:
            obj = io.BytesIO()
        elif isinstance(obj, (str, os.PathLike)):
            logger.debug('creating path \'%s\'' % obj)
            obj = open(obj, 'wb')
            self._owned = True

        self.obj = obj

    def write(self, data):
        return self.obj.write(data)

    def tell(self):
        return self.obj.tell()

    def getvalue(self):
        return self.obj.getvalue()

    def close(self):
        if self._owned:
            self.obj.close()
        else:
            self.obj.flush()
