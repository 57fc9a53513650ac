from enum import Enum, Flag, auto


class Compliant(Flag):
    '''It indicates which degree of compliantness the archive must reflect the schema'''
    NONE       = 0
    SCHEMA     = 1 << 0
    REFERENCES = 1 << 1
    ALL        = SCHEMA | REFERENCES


class ResourceKind(Enum):
    '''The kind of a resource as stored into the framing table'''
    INSTANCE    = 1
    VECTOR      = 2
    MULTIVECTOR = 3
    RAW_DATA    = 4
    INDEX       = 5  # offset index of a multivector


class BuilderPhase(Enum):
    '''Enum to state the actual phase of a builder'''
    OPEN  = 0
    DONE  = auto()
    ERROR = auto()
