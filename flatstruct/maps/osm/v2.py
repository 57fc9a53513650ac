'''
Second revision of the OSM schema: the members of the relations are not a
multivector anymore but a single vector of records with a 2 bits discriminant
telling what the index points to; the members of the relation i are in the
range given by member_first_idx, like the tags.
'''
from enum import Enum

from flatstruct import fields
from flatstruct.core import Struct
from flatstruct.properties import ImplicitGroup, Reference
from flatstruct.resources import Vector

from . import OsmBase


class MemberType(Enum):
    NODE     = 0
    WAY      = 1
    RELATION = 2


class Member(Struct):
    type     = fields.UInt(2, enum=MemberType)
    idx      = fields.UInt(40)
    role_idx = fields.UInt(40)
    padding  = fields.Padding(6)


class Relation(Struct):
    id               = fields.Int(40)
    tag_first_idx    = fields.UInt(40)
    member_first_idx = fields.UInt(40)


class Osm(OsmBase):
    relations = Vector(Relation, sentinel=True, range_field='member_first_idx')
    members   = Vector(Member)

    relation_tags    = Reference('relations.tag_first_idx', 'tags_index', inclusive=True)
    relation_members = Reference('relations.member_first_idx', 'members', inclusive=True)

    member_node     = Reference('members.idx', 'nodes', when=('type', MemberType.NODE))
    member_way      = Reference('members.idx', 'ways', when=('type', MemberType.WAY))
    member_relation = Reference('members.idx', 'relations', when=('type', MemberType.RELATION))
    member_role     = Reference('members.role_idx', 'stringtable')

    relations_members = ImplicitGroup('relations', 'members')
