import enum
import os


class SymbolRole(enum.IntFlag):
    DECLARATION = 1 << 0
    DEFINITION = 1 << 1
    REFERENCE = 1 << 2
    READ = 1 << 3
    WRITE = 1 << 4
    CALL = 1 << 5
    DYNAMIC = 1 << 6
    ADDRESS_OF = 1 << 7
    IMPLICIT = 1 << 8
    CHILD_OF = 1 << 9
    BASE_OF = 1 << 10
    OVERRIDE_OF = 1 << 11
    RECEIVED_BY = 1 << 12
    CALLED_BY = 1 << 13
    EXTENDED_BY = 1 << 14
    ACCESSOR_OF = 1 << 15
    CONTAINED_BY = 1 << 16
    IB_TYPE_OF = 1 << 17
    SPECIALIZATION_OF = 1 << 18

    @classmethod
    def named(cls, role_name):
        for role in cls:
            if role.display_name == role_name:
                return role
        raise ValueError('Unknown symbol role: %s' % role_name)

    @classmethod
    def from_names(cls, role_names):
        roles = cls(0)
        for role_name in role_names:
            roles |= cls.named(role_name)
        return roles

    @property
    def display_name(self):
        return camel_case(self.name)

    def names(self):
        return [role.display_name for role in SymbolRole if role in self]


USAGE_ROLES = (
    SymbolRole.CALL
    | SymbolRole.REFERENCE
    | SymbolRole.READ
    | SymbolRole.WRITE
)
REFERENCE_ROLES = USAGE_ROLES | SymbolRole.DECLARATION


def camel_case(upper_snake_name):
    first_word, *other_words = upper_snake_name.lower().split('_')
    return first_word + ''.join(word.capitalize() for word in other_words)


class SymbolKind(enum.Enum):
    UNKNOWN = 0
    MODULE = 1
    NAMESPACE = 2
    NAMESPACE_ALIAS = 3
    MACRO = 4
    ENUM = 5
    STRUCT = 6
    CLASS = 7
    PROTOCOL = 8
    EXTENSION = 9
    UNION = 10
    TYPE_ALIAS = 11
    FUNCTION = 12
    VARIABLE = 13
    FIELD = 14
    ENUM_CONSTANT = 15
    INSTANCE_METHOD = 16
    CLASS_METHOD = 17
    STATIC_METHOD = 18
    INSTANCE_PROPERTY = 19
    CLASS_PROPERTY = 20
    STATIC_PROPERTY = 21
    CONSTRUCTOR = 22
    DESTRUCTOR = 23
    CONVERSION_FUNCTION = 24
    PARAMETER = 25
    USING = 26
    CONCEPT = 27
    COMMENT_TAG = 1000

    @classmethod
    def _missing_(cls, value):
        return cls.UNKNOWN

    @classmethod
    def named(cls, kind_name):
        for kind in cls:
            if kind.display_name == kind_name:
                return kind
        return cls.UNKNOWN

    @property
    def display_name(self):
        return camel_case(self.name)

    @property
    def category(self):
        if self in TYPE_KINDS:
            return 'type'
        if self in METHOD_KINDS:
            return 'method'
        if self in PROPERTY_KINDS:
            return 'property'
        if self is SymbolKind.ENUM_CONSTANT:
            return 'enum case'
        return 'other'

    @property
    def category_rank(self):
        return CATEGORY_RANKS.get(self.category, len(CATEGORY_RANKS))


TYPE_KINDS = frozenset(
    [
        SymbolKind.ENUM,
        SymbolKind.STRUCT,
        SymbolKind.CLASS,
        SymbolKind.PROTOCOL,
        SymbolKind.UNION,
        SymbolKind.TYPE_ALIAS,
    ]
)
METHOD_KINDS = frozenset(
    [
        SymbolKind.FUNCTION,
        SymbolKind.INSTANCE_METHOD,
        SymbolKind.CLASS_METHOD,
        SymbolKind.STATIC_METHOD,
        SymbolKind.CONSTRUCTOR,
        SymbolKind.DESTRUCTOR,
        SymbolKind.CONVERSION_FUNCTION,
    ]
)
PROPERTY_KINDS = frozenset(
    [
        SymbolKind.VARIABLE,
        SymbolKind.FIELD,
        SymbolKind.INSTANCE_PROPERTY,
        SymbolKind.CLASS_PROPERTY,
        SymbolKind.STATIC_PROPERTY,
    ]
)
CATEGORY_RANKS = {'type': 0, 'method': 1, 'property': 2}


class SymbolSubkind(enum.Enum):
    NONE = 0
    CXX_COPY_CONSTRUCTOR = 1
    CXX_MOVE_CONSTRUCTOR = 2
    ACCESSOR_GETTER = 3
    ACCESSOR_SETTER = 4
    USING_TYPENAME = 5
    USING_VALUE = 6
    USING_ENUM = 7
    SWIFT_ACCESSOR_WILL_SET = 1000
    SWIFT_ACCESSOR_DID_SET = 1001
    SWIFT_ACCESSOR_ADDRESSOR = 1002
    SWIFT_ACCESSOR_MUTABLE_ADDRESSOR = 1003
    SWIFT_EXTENSION_OF_STRUCT = 1004
    SWIFT_EXTENSION_OF_CLASS = 1005
    SWIFT_EXTENSION_OF_ENUM = 1006
    SWIFT_EXTENSION_OF_PROTOCOL = 1007
    SWIFT_PREFIX_OPERATOR = 1008
    SWIFT_POSTFIX_OPERATOR = 1009
    SWIFT_INFIX_OPERATOR = 1010
    SWIFT_SUBSCRIPT = 1011
    SWIFT_ASSOCIATED_TYPE = 1012
    SWIFT_GENERIC_TYPE_PARAM = 1013
    SWIFT_ACCESSOR_READ = 1014
    SWIFT_ACCESSOR_MODIFY = 1015

    @classmethod
    def _missing_(cls, value):
        return cls.NONE

    @classmethod
    def named(cls, subkind_name):
        for subkind in cls:
            if subkind.display_name == subkind_name:
                return subkind
        return cls.NONE

    @property
    def display_name(self):
        return camel_case(self.name)

    @property
    def is_accessor(self):
        return self in ACCESSOR_SUBKINDS


ACCESSOR_SUBKINDS = frozenset(
    [
        SymbolSubkind.ACCESSOR_GETTER,
        SymbolSubkind.ACCESSOR_SETTER,
        SymbolSubkind.SWIFT_ACCESSOR_WILL_SET,
        SymbolSubkind.SWIFT_ACCESSOR_DID_SET,
        SymbolSubkind.SWIFT_ACCESSOR_ADDRESSOR,
        SymbolSubkind.SWIFT_ACCESSOR_MUTABLE_ADDRESSOR,
        SymbolSubkind.SWIFT_ACCESSOR_READ,
        SymbolSubkind.SWIFT_ACCESSOR_MODIFY,
    ]
)


class Symbol:
    def __init__(self, name, usr, kind=SymbolKind.UNKNOWN, subkind=SymbolSubkind.NONE):
        self.name = name
        self.usr = usr
        self.kind = kind
        self.subkind = subkind

    @property
    def base_name(self):
        return self.name.split('(', 1)[0]

    @property
    def is_accessor(self):
        return (
            self.subkind.is_accessor
            or self.name.startswith('getter:')
            or self.name.startswith('setter:')
        )

    def __repr__(self):
        return '<Symbol %s %s>' % (self.kind.display_name, self.name)


class SymbolRelation:
    def __init__(self, roles, symbol):
        self.roles = roles
        self.symbol = symbol


class SymbolOccurrence:
    def __init__(self, symbol, roles, line, column, relations=(), file_path=None):
        self.symbol = symbol
        self.roles = roles
        self.line = line
        self.column = column
        self.relations = list(relations)
        self.file_path = file_path

    @property
    def file_name(self):
        return os.path.basename(self.file_path or '')

    def related_symbols(self, roles):
        return [
            relation.symbol
            for relation in self.relations
            if relation.roles & roles
        ]

    def container_name(self):
        for roles in (SymbolRole.CALLED_BY, SymbolRole.CONTAINED_BY):
            related_symbols = self.related_symbols(roles)
            if related_symbols:
                return related_symbols[0].name
        return None


class IndexUnit:
    def __init__(self, unit_name, record_name, file_path):
        self.unit_name = unit_name
        self.record_name = record_name
        self.file_path = file_path

    @property
    def file_name(self):
        return os.path.basename(self.file_path)

    def __repr__(self):
        return '<IndexUnit %s %s>' % (self.unit_name, self.file_path)
