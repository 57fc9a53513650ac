from . import COORD_SCALE


def coords(archive, node):
    '''Latitude and longitude in degrees of the node.'''
    scale = archive.header.get().coord_scale or COORD_SCALE
    return node.lat / scale, node.lon / scale


def tags_of(archive, resource, i):
    '''The tags of the element i of nodes, ways or relations as a dictionary.'''
    tags = {}
    for tag_index in archive.iter_range(resource, i, 'tag_first_idx'):
        tag = archive.resolve('tags_index', tag_index, 'value')
        key = archive.resolve('tags', tag, 'key_idx')
        tags[key] = archive.resolve('tags', tag, 'value_idx')

    return tags


def way_nodes(archive, i):
    '''The nodes of the way i, in order.'''
    return [
        archive.resolve('nodes_index', node_index, 'value')
        for node_index in archive.iter_range('ways', i, 'ref_first_idx')
    ]


def way_node_ids(archive, i):
    return [node.id for node in way_nodes(archive, i)]


def relation_members(archive, i):
    '''The members of the relation i as a list of (resource name, record, role).

    Both the revisions are handled: the multivector of the first one and the
    vector with the discriminant of the second.'''
    members = []

    if archive.has_resource('relation_members'):
        for _, member in archive.relation_members.item_at(i):
            member_field = {
                'NodeMember': ('node_idx', 'nodes'),
                'WayMember': ('way_idx', 'ways'),
                'RelationMember': ('relation_idx', 'relations'),
            }[member.__class__.__name__]

            target = archive.resolve('relation_members', member, member_field[0])
            role = archive.resolve('relation_members', member, 'role_idx')
            members.append((member_field[1], target, role))

        return members

    for member in archive.iter_range('relations', i, 'member_first_idx'):
        reference = archive.reference_for('members', member, 'idx')
        target = archive.resolve('members', member, 'idx')
        role = archive.resolve('members', member, 'role_idx')
        members.append((reference.target, target, role))

    return members
