'''
# OpenStreetMap

Compact representation of an OSM extract: nodes, ways and relations are
vectors with a sentinel, so that the tags (and the nodes of a way) of the
element i are in the range [element(i).x_first_idx, element(i + 1).x_first_idx)
of the corresponding index; the tags and all the strings (keys, values, roles)
live in a single null terminated string table.

In this revision the members of the relations are stored into a multivector
having three variants (node, way, relation member), the item i holding the
members of the relation i.

The coordinates are integers: the degrees multiplied by coord_scale of the header.
'''
from flatstruct import fields
from flatstruct.archive import Archive
from flatstruct.core import Struct
from flatstruct.properties import ImplicitGroup, Reference
from flatstruct.resources import Instance, Multivector, RawData, Vector


COORD_SCALE = 1000000000


class Header(Struct):
    coord_scale                 = fields.Int(32)
    bbox_left                   = fields.Int(40)
    bbox_right                  = fields.Int(40)
    bbox_top                    = fields.Int(40)
    bbox_bottom                 = fields.Int(40)
    writingprogram_idx          = fields.UInt(40)
    source_idx                  = fields.UInt(40)
    replication_timestamp       = fields.Int(64)
    replication_sequence_number = fields.Int(64)
    replication_base_url_idx    = fields.UInt(40)


class Tag(Struct):
    key_idx   = fields.UInt(32)
    value_idx = fields.UInt(32)


class Node(Struct):
    id            = fields.Int(40)
    lat           = fields.Int(40)
    lon           = fields.Int(40)
    tag_first_idx = fields.UInt(40)


class Way(Struct):
    id            = fields.Int(40)
    tag_first_idx = fields.UInt(40)
    ref_first_idx = fields.UInt(40)


class TagIndex(Struct):
    value = fields.UInt(40)


class NodeIndex(Struct):
    value = fields.UInt(40)


class Relation(Struct):
    id            = fields.Int(40)
    tag_first_idx = fields.UInt(40)


class NodeMember(Struct):
    node_idx = fields.UInt(40)
    role_idx = fields.UInt(40)


class WayMember(Struct):
    way_idx  = fields.UInt(40)
    role_idx = fields.UInt(40)


class RelationMember(Struct):
    relation_idx = fields.UInt(40)
    role_idx     = fields.UInt(40)


class OsmBase(Archive):
    '''Resources shared by both the revisions of the schema.'''
    header      = Instance(Header)
    nodes       = Vector(Node, sentinel=True, range_field='tag_first_idx')
    ways        = Vector(Way, sentinel=True, range_field='ref_first_idx')
    tags        = Vector(Tag)
    tags_index  = Vector(TagIndex)
    nodes_index = Vector(NodeIndex)
    stringtable = RawData()

    header_writingprogram = Reference('header.writingprogram_idx', 'stringtable')
    header_source         = Reference('header.source_idx', 'stringtable')
    header_base_url       = Reference('header.replication_base_url_idx', 'stringtable')

    node_tags = Reference('nodes.tag_first_idx', 'tags_index', inclusive=True)
    way_tags  = Reference('ways.tag_first_idx', 'tags_index', inclusive=True)
    way_refs  = Reference('ways.ref_first_idx', 'nodes_index', inclusive=True)

    tag_key   = Reference('tags.key_idx', 'stringtable')
    tag_value = Reference('tags.value_idx', 'stringtable')

    tags_index_tag  = Reference('tags_index.value', 'tags')
    nodes_index_node = Reference('nodes_index.value', 'nodes')


class Osm(OsmBase):
    relations        = Vector(Relation, sentinel=True, range_field='tag_first_idx')
    relation_members = Multivector([NodeMember, WayMember, RelationMember], index_width=40)

    relation_tags = Reference('relations.tag_first_idx', 'tags_index', inclusive=True)

    member_node     = Reference('relation_members.@NodeMember.node_idx', 'nodes')
    member_way      = Reference('relation_members.@WayMember.way_idx', 'ways')
    member_relation = Reference('relation_members.@RelationMember.relation_idx', 'relations')

    node_member_role     = Reference('relation_members.@NodeMember.role_idx', 'stringtable')
    way_member_role      = Reference('relation_members.@WayMember.role_idx', 'stringtable')
    relation_member_role = Reference('relation_members.@RelationMember.role_idx', 'stringtable')

    # the item i of relation_members holds the members of the relation i
    relations_members = ImplicitGroup('relations', 'relation_members')
