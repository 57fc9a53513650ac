'''
# Framing of the resources inside an archive

All the resources of an archive live in one contiguous byte span laid out as

    +--------------------+
    | ArchiveHeader      |  magic, version, number of entries, size of the names
    +--------------------+
    | ResourceEntry * n  |  name, kind, schema checksum, offset and size of each resource
    +--------------------+
    | names              |  null terminated names of the resources
    +--------------------+
    | resource 0         |  every resource starts 8 bytes aligned
    | ...                |
    +--------------------+

The header and the entries are records like any other, so they are declared
with the same machinery used for the schemas.
'''
import logging
from collections import namedtuple
from typing import Dict, Iterable

from . import fields
from .core import Struct
from .enum import ResourceKind
from .exceptions import BindError, Truncated
from .resources import RawDataView


logger = logging.getLogger(__name__)

MAGIC = int.from_bytes(b'FLSTRUCT', 'little')
VERSION = 1
ALIGNMENT = 8


class ArchiveHeader(Struct):
    magic      = fields.UInt(64)
    version    = fields.UInt(16)
    flags      = fields.UInt(16)
    count      = fields.UInt(32)
    names_size = fields.UInt(32)
    reserved   = fields.Padding(32)


class ResourceEntry(Struct):
    name_offset = fields.UInt(32)
    kind        = fields.UInt(8, enum=ResourceKind)
    schema_crc  = fields.UInt(32)
    offset      = fields.UInt(64)
    size        = fields.UInt(64)
    reserved    = fields.Padding(8)


FramedResource = namedtuple('FramedResource', ['name', 'kind', 'schema_crc', 'payload'])
FramedEntry = namedtuple('FramedEntry', ['name', 'kind', 'schema_crc', 'offset', 'size'])


def align(offset, alignment=ALIGNMENT):
    return (offset + alignment - 1) // alignment * alignment


def write_archive(sink, resources: Iterable[FramedResource]) -> int:
    '''Write sequentially header, table and payloads; returns the number of bytes written.'''
    resources = list(resources)

    names = bytearray()
    name_offsets = []
    for resource in resources:
        name_offsets.append(len(names))
        names += resource.name.encode('utf-8') + b'\x00'

    table_end = ArchiveHeader.size_in_bytes + len(resources) * ResourceEntry.size_in_bytes + len(names)

    header = ArchiveHeader.from_values(
        magic=MAGIC,
        version=VERSION,
        count=len(resources),
        names_size=len(names),
    )

    entries = []
    offset = align(table_end)
    for resource, name_offset in zip(resources, name_offsets):
        entries.append(ResourceEntry.from_values(
            name_offset=name_offset,
            kind=resource.kind,
            schema_crc=resource.schema_crc,
            offset=offset,
            size=len(resource.payload),
        ))
        logger.debug('framing \'%s\' (%s) at %08x size %d' % (resource.name, resource.kind.name, offset, len(resource.payload)))
        offset = align(offset + len(resource.payload))

    written = 0
    written += sink.write(header.raw)
    for entry in entries:
        written += sink.write(entry.raw)
    written += sink.write(bytes(names))

    for entry, resource in zip(entries, resources):
        written += sink.write(b'\x00' * (entry.offset - written))
        written += sink.write(resource.payload)

    written += sink.write(b'\x00' * (align(written) - written))

    return written


def read_table(span) -> Dict[str, FramedEntry]:
    '''Parse the framing table; the payloads are not checked here.'''
    try:
        header = ArchiveHeader(span, 0)
    except Truncated:
        raise BindError(f'{len(span)} bytes are too few for an archive')

    if header.magic != MAGIC:
        raise BindError(f'wrong magic 0x{header.magic:016x}')

    if header.version != VERSION:
        raise BindError(f'version {header.version} is not supported (expected {VERSION})')

    entries_start = ArchiveHeader.size_in_bytes
    names_start = entries_start + header.count * ResourceEntry.size_in_bytes
    names_end = names_start + header.names_size
    if names_end > len(span):
        raise BindError(f'the framing table ends at {names_end} but the archive has {len(span)} bytes')

    names = RawDataView(span[names_start:names_end], name='names')

    table = {}
    for index in range(header.count):
        entry = ResourceEntry(span, entries_start + index * ResourceEntry.size_in_bytes)

        try:
            name = names.string_at(entry.name_offset)
        except (IndexError, Truncated, UnicodeDecodeError):
            raise BindError(f'entry {index} has an invalid name')

        if not isinstance(entry.kind, ResourceKind):
            raise BindError(f'resource \'{name}\' has an unknown kind {entry.kind}')

        if name in table:
            raise BindError(f'resource \'{name}\' is framed twice')

        table[name] = FramedEntry(name, entry.kind, entry.schema_crc, entry.offset, entry.size)
        logger.debug('found \'%s\' (%s) at %08x size %d' % (name, entry.kind.name, entry.offset, entry.size))

    return table
