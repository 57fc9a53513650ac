import pytest

from flatstruct.maps import osm
from flatstruct.maps.osm import v2


def _build_common(builder):
    '''Header, nodes, ways, tags and strings shared by both the revisions.

    Three nodes (the second one named), one way with two tags passing through
    all the nodes, one tag left for the first relation.'''
    strings = builder.raw_data('stringtable')

    builder.instance('header').set(
        coord_scale=osm.COORD_SCALE,
        bbox_left=-70600000000,
        bbox_right=13500000000,
        bbox_top=52600000000,
        bbox_bottom=-33900000000,
        writingprogram_idx=strings.add_string('flatstruct-tests'),
        source_idx=strings.add_string('test'),
        replication_base_url_idx=strings.add_string('http://example.com/replication'),
    )

    tags = builder.vector('tags')
    tags.append(key_idx=strings.add_string('highway'), value_idx=strings.add_string('primary'))
    tags.append(key_idx=strings.add_string('name'), value_idx=strings.add_string('Main Street'))
    tags.append(key_idx=strings.add_string('type'), value_idx=strings.add_string('route'))

    tags_index = builder.vector('tags_index')
    nodes = builder.vector('nodes')
    nodes.append(id=10, lat=52500000000, lon=13400000000, tag_first_idx=len(tags_index))
    nodes.append(id=11, lat=52600000000, lon=13500000000, tag_first_idx=len(tags_index))
    tags_index.append(value=1)
    nodes.append(id=12, lat=-33900000000, lon=-70600000000, tag_first_idx=len(tags_index))
    # the tags of the ways follow, so the sentinel must be set now
    nodes.set_sentinel(tag_first_idx=len(tags_index))

    nodes_index = builder.vector('nodes_index')
    ways = builder.vector('ways')
    ways.append(id=100, tag_first_idx=len(tags_index), ref_first_idx=len(nodes_index))
    tags_index.append(value=0)
    tags_index.append(value=1)
    for node_idx in range(3):
        nodes_index.append(value=node_idx)
    ways.set_sentinel(tag_first_idx=len(tags_index))

    return strings, tags_index


@pytest.fixture
def osm_builder():
    builder = osm.Osm.build()
    strings, tags_index = _build_common(builder)

    return builder, strings, tags_index


@pytest.fixture
def osm_v2_builder():
    builder = v2.Osm.build()
    strings, tags_index = _build_common(builder)

    return builder, strings, tags_index


@pytest.fixture
def osm_data(osm_builder):
    builder, strings, tags_index = osm_builder

    relations = builder.vector('relations')
    members = builder.multivector('relation_members')

    relations.append(id=1000, tag_first_idx=len(tags_index))
    tags_index.append(value=2)
    with members.item():
        members.add(osm.WayMember, way_idx=0, role_idx=strings.add_string('street'))
        members.add(osm.NodeMember, node_idx=1, role_idx=strings.add_string('stop'))

    relations.append(id=1001, tag_first_idx=len(tags_index))
    with members.item():
        members.add(osm.RelationMember, relation_idx=0, role_idx=strings.add_string('parent'))

    return builder.finalize()


@pytest.fixture
def osm_archive(osm_data):
    return osm.Osm(osm_data)


@pytest.fixture
def osm_v2_data(osm_v2_builder):
    builder, strings, tags_index = osm_v2_builder

    relations = builder.vector('relations')
    members = builder.vector('members')

    relations.append(id=1000, tag_first_idx=len(tags_index), member_first_idx=len(members))
    tags_index.append(value=2)
    members.append(type=v2.MemberType.WAY, idx=0, role_idx=strings.add_string('street'))
    members.append(type=v2.MemberType.NODE, idx=1, role_idx=strings.add_string('stop'))

    relations.append(id=1001, tag_first_idx=len(tags_index), member_first_idx=len(members))
    members.append(type=v2.MemberType.RELATION, idx=0, role_idx=strings.add_string('parent'))

    return builder.finalize()


@pytest.fixture
def osm_v2_archive(osm_v2_data):
    return v2.Osm(osm_v2_data)
