'''Schemas of archives for map data.'''
