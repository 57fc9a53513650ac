from concurrent.futures import ThreadPoolExecutor

import pytest

from flatstruct import fields
from flatstruct.archive import Archive, bind
from flatstruct.core import Struct
from flatstruct.enum import Compliant
from flatstruct.exceptions import (
    BindError,
    DanglingReference,
    IntegrityError,
    SchemaError,
    Truncated,
)
from flatstruct.framing import read_table
from flatstruct.properties import ImplicitGroup, Reference
from flatstruct.resources import Multivector, RawData, Vector
from flatstruct.streams import Stream


class Tag(Struct):
    key_idx = fields.UInt(32)
    value_idx = fields.UInt(32)


class Tag16(Struct):
    key_idx = fields.UInt(16)
    value_idx = fields.UInt(16)


class TagIndex(Struct):
    value = fields.UInt(40)


class Relation(Struct):
    id = fields.Int(40)
    tag_first_idx = fields.UInt(40)


class Tags(Archive):
    tags = Vector(Tag)
    stringtable = RawData()

    tag_key = Reference('tags.key_idx', 'stringtable')
    tag_value = Reference('tags.value_idx', 'stringtable')

    tags_strings = ImplicitGroup('tags', 'stringtable')


class TagsOnly(Archive):
    tags = Vector(Tag)


class TagsAsRaw(Archive):
    tags = RawData()
    stringtable = RawData()


class OtherTags(Archive):
    tags = Vector(Tag16)
    stringtable = RawData()


class Relations(Archive):
    relations = Vector(Relation)
    tags = Vector(TagIndex)

    relation_tags = Reference('relations.tag_first_idx', 'tags')


class InclusiveRelations(Archive):
    relations = Vector(Relation)
    tags = Vector(TagIndex)

    relation_tags = Reference('relations.tag_first_idx', 'tags', inclusive=True)


class NullableRelations(Archive):
    relations = Vector(Relation)
    tags = Vector(TagIndex)

    relation_tags = Reference('relations.tag_first_idx', 'tags', zero_is_null=True)


def _tags_data():
    builder = Tags.build()
    strings = builder.raw_data('stringtable')
    tags = builder.vector('tags')
    tags.append(key_idx=strings.add_string('highway'), value_idx=strings.add_string('primary'))
    tags.append(key_idx=strings.add_string('name'), value_idx=strings.add_string('Main Street'))

    return builder.finalize()


def _relations_data(schema, tag_first_idx, tag_count):
    builder = schema.build()
    relations = builder.vector('relations')
    for i, value in enumerate(tag_first_idx):
        relations.append(id=i, tag_first_idx=value)

    tags = builder.vector('tags')
    for i in range(tag_count):
        tags.append(value=i)

    return builder.finalize()


def test_bind():
    archive = Tags(_tags_data())

    assert archive.resource_names() == ['tags', 'stringtable']
    assert len(archive.tags) == 2
    assert archive.stringtable.string_at(archive.tags.at(1).value_idx) == 'Main Street'
    assert archive.resolve('tags', archive.tags.at(0), 'key_idx') == 'highway'
    assert repr(archive) == '<Tags(tags,stringtable)>'


def test_bind_function():
    data = _tags_data()

    assert isinstance(bind(data, Tags), Tags)
    assert len(bind(bytearray(data), Tags).tags) == 2
    assert len(bind(memoryview(data), Tags).tags) == 2

    with pytest.raises(TypeError):
        bind(data, Tag)


def test_bind_wrong_magic():
    data = bytearray(_tags_data())
    data[0] ^= 0xff

    with pytest.raises(BindError):
        Tags(data)


def test_bind_wrong_version():
    data = bytearray(_tags_data())
    data[8] = 0x42

    with pytest.raises(BindError):
        Tags(data)


@pytest.mark.parametrize('size', [0, 10, 30])
def test_bind_truncated_table(size):
    with pytest.raises(BindError):
        Tags(_tags_data()[:size])


def test_bind_missing_resource():
    builder = TagsOnly.build()
    builder.vector('tags')
    data = builder.finalize()

    with pytest.raises(BindError) as e:
        Tags(data)

    assert e.value.chain == ['stringtable']


def test_bind_undeclared_resource():
    archive = TagsOnly(_tags_data())

    assert archive.resource_names() == ['tags']
    assert len(archive.tags) == 2


def test_bind_wrong_kind():
    with pytest.raises(BindError):
        TagsAsRaw(_tags_data())


def test_bind_schema_mismatch():
    data = _tags_data()

    with pytest.raises(BindError):
        OtherTags(data)

    archive = OtherTags(data, compliant=Compliant.NONE)

    assert len(archive.tags) == 4


def test_malformed_resource_fails_at_first_use():
    data = _tags_data()
    entry = read_table(memoryview(data))['stringtable']

    archive = Tags(data[:entry.offset + 2])

    assert archive.tags.at(0).key_idx == 0

    with pytest.raises(Truncated) as e:
        archive.stringtable

    assert e.value.chain == ['stringtable']


def test_dangling_reference_on_validation():
    archive = Relations(_relations_data(Relations, [5], 5))

    findings = archive.validate_references()

    assert len(findings) == 1
    finding = findings[0]
    assert isinstance(finding, DanglingReference)
    assert (finding.source, finding.field, finding.index) == ('relations', 'tag_first_idx', 0)
    assert (finding.value, finding.target, finding.target_count) == (5, 'tags', 5)
    assert finding.chain == ['relations', 0, 'tag_first_idx']


def test_inclusive_reference_on_validation():
    archive = InclusiveRelations(_relations_data(InclusiveRelations, [5], 5))

    assert archive.validate_references() == []
    assert archive.index_of('relations', archive.relations.at(0), 'tag_first_idx') == 5

    # the end of the range can be stored, not followed
    with pytest.raises(DanglingReference):
        archive.resolve('relations', archive.relations.at(0), 'tag_first_idx')


def test_validation_collects_all_findings():
    archive = Relations(_relations_data(Relations, [5, 1, 9, 4], 5))

    findings = archive.validate_references()

    assert [(_.index, _.value) for _ in findings] == [(0, 5), (2, 9)]


def test_eager_validation():
    data = _relations_data(Relations, [5, 1, 9], 5)

    with pytest.raises(IntegrityError) as e:
        Relations(data, compliant=Compliant.ALL)

    assert isinstance(e.value, BindError)
    assert len(e.value.findings) == 2

    Relations(_relations_data(Relations, [0, 4], 5), compliant=Compliant.ALL)


def test_follow_reference():
    archive = Relations(_relations_data(Relations, [5, 1], 5))

    assert archive.index_of('relations', archive.relations.at(1), 'tag_first_idx') == 1
    assert archive.resolve('relations', archive.relations.at(1), 'tag_first_idx') == archive.tags.at(1)

    with pytest.raises(DanglingReference) as e:
        archive.resolve('relations', archive.relations.at(0), 'tag_first_idx')

    assert e.value.index == 0

    with pytest.raises(SchemaError):
        archive.resolve('relations', archive.relations.at(0), 'id')


def test_zero_is_null():
    archive = NullableRelations(_relations_data(NullableRelations, [0, 1, 5, 6], 5))
    relations = archive.relations

    assert archive.index_of('relations', relations.at(0), 'tag_first_idx') is None
    assert archive.resolve('relations', relations.at(0), 'tag_first_idx') is None
    assert archive.index_of('relations', relations.at(1), 'tag_first_idx') == 0
    assert archive.resolve('relations', relations.at(2), 'tag_first_idx').value == 4

    with pytest.raises(DanglingReference):
        archive.index_of('relations', relations.at(3), 'tag_first_idx')

    assert [(_.index, _.value) for _ in archive.validate_references()] == [(3, 6)]


def test_valid_archive_has_only_valid_references():
    archive = Relations(_relations_data(Relations, [0, 4, 2, 2], 5))

    assert archive.validate_references() == []
    for relation in archive.relations:
        archive.resolve('relations', relation, 'tag_first_idx')


def test_groups():
    archive = Tags(_tags_data())

    assert Tags.groups() == {'tags_strings': ('tags', 'stringtable')}

    group = archive.load_group('tags_strings')

    assert set(group) == {'tags', 'stringtable'}
    assert len(group['tags']) == 2

    with pytest.raises(KeyError):
        archive.load_group('kebab')


def test_schema_description():
    description = Tags.schema_description()

    assert description.splitlines() == [
        'archive Tags',
        '  tags: vector<Tag{key_idx:u32,value_idx:u32}>',
        '  stringtable: raw_data',
        '  reference tags.key_idx->stringtable',
        '  reference tags.value_idx->stringtable',
        '  group tags_strings: tags, stringtable',
    ]

    assert [_.name for _ in Tags.references()] == ['tag_key', 'tag_value']


def test_schema_errors():
    with pytest.raises(SchemaError):
        Reference('tags', 'stringtable')

    with pytest.raises(SchemaError):
        ImplicitGroup('tags')

    with pytest.raises(SchemaError):
        class UnknownResource(Archive):
            tags = Vector(Tag)
            tag_key = Reference('kebab.key_idx', 'tags')

    with pytest.raises(SchemaError):
        class UnknownTarget(Archive):
            tags = Vector(Tag)
            tag_key = Reference('tags.key_idx', 'kebab')

    with pytest.raises(SchemaError):
        class UnknownField(Archive):
            tags = Vector(Tag)
            tag_key = Reference('tags.kebab', 'tags')

    with pytest.raises(SchemaError):
        class VariantOfVector(Archive):
            tags = Vector(Tag)
            tag_key = Reference('tags.@Tag.key_idx', 'tags')

    with pytest.raises(SchemaError):
        class MissingVariant(Archive):
            members = Multivector([Tag, TagIndex])
            member = Reference('members.value', 'members')

    with pytest.raises(SchemaError):
        class FieldsOfRawData(Archive):
            tags = Vector(Tag)
            stringtable = RawData()
            nonsense = Reference('stringtable.key_idx', 'tags')

    with pytest.raises(SchemaError):
        class UnknownGroup(Archive):
            tags = Vector(Tag)
            group = ImplicitGroup('tags', 'kebab')

    with pytest.raises(SchemaError):
        class FramedTwice(Archive):
            members = Multivector([Tag])
            members_index = RawData()


def test_concurrent_readers():
    archive = Relations(_relations_data(Relations, list(range(5)) * 20, 5))

    def read(_):
        return [
            archive.resolve('relations', relation, 'tag_first_idx').value
            for relation in archive.relations
        ]

    with ThreadPoolExecutor(max_workers=8) as executor:
        results = list(executor.map(read, range(32)))

    assert all(result == list(range(5)) * 20 for result in results)


class Member(Struct):
    node_idx = fields.UInt(40)


class Ref(Struct):
    item = fields.UInt(32)


class Items(Archive):
    refs = Vector(Ref)
    items = Multivector([Member])

    ref_item = Reference('refs.item', 'items')


def test_resolve_into_multivector():
    builder = Items.build()
    items = builder.multivector('items')
    with items.item():
        items.add(Member, node_idx=7)
    with items.item():
        pass

    refs = builder.vector('refs')
    refs.append(item=0)
    refs.append(item=1)

    archive = Items(builder.finalize())

    assert archive.validate_references() == []

    item = archive.resolve('refs', archive.refs.at(0), 'item')

    assert len(item) == 1
    assert item[0][1].node_idx == 7
    assert archive.resolve('refs', archive.refs.at(1), 'item') == []


def test_bind_error_closes_the_stream(tmp_path, monkeypatch):
    closed = []

    class TrackedStream(Stream):
        def close(self):
            closed.append(self.obj)
            super().close()

    monkeypatch.setattr('flatstruct.archive.Stream', TrackedStream)

    path = tmp_path / 'zeros.flat'
    path.write_bytes(b'\x00' * 64)

    with pytest.raises(BindError):
        Tags.open(path)

    assert closed == [str(path)]


def test_close_with_live_records(tmp_path):
    path = tmp_path / 'tags.flat'
    path.write_bytes(_tags_data())

    archive = Tags.open(path)
    tag = archive.tags.at(1)

    archive.close()

    assert tag.key_idx == 16
