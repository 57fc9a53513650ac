"""
# Flatstruct: schema driven binary archives.

An archive is a set of named resources living in a single byte span, written
once and then read (memory mapped, usually) by any number of readers without
parsing it: every access decodes only the bits it needs.

A schema describes

 1. the records (subclasses of core.Struct): fields of any width between
    1 and 64 bits, signed or unsigned, packed without alignment
 2. the resources of the archive (subclasses of archive.Archive): instances,
    vectors of records, multivectors of tagged records and raw data
 3. the references between resources: a field whose value is an index (or an
    offset) into another resource, checked every time it's followed or all
    at once with validate_references()

Two basic main operations are defined for an archive:

 1. bind(): the byte span is attached to the schema, the framing table is
    checked but the resources are decoded only when accessed

 2. build(): a builder appends the records resource by resource and
    finalize() returns the bytes of the archive

"""
