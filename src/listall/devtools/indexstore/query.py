import enum
import logging
import os

from listall.devtools.errors import DefinitionNotFound
from listall.devtools.errors import IndexStoreError
from listall.devtools.errors import InvalidParameters
from listall.devtools.errors import UnknownMode
from listall.devtools.indexstore import report
from listall.devtools.indexstore.model import REFERENCE_ROLES
from listall.devtools.indexstore.model import USAGE_ROLES
from listall.devtools.indexstore.model import SymbolKind
from listall.devtools.indexstore.model import SymbolRole


class QueryMode(enum.Enum):
    GRAPH = 'graph'
    CALLERS = 'callers'
    CALLEES = 'callees'
    DEFINITION = 'definition'
    REFERENCES = 'references'
    HIERARCHY = 'hierarchy'
    MEMBERS = 'members'
    SEARCH = 'search'
    DUMP = 'dump'

    @classmethod
    def named(cls, mode_name):
        for mode in cls:
            if mode.value == mode_name:
                return mode
        raise UnknownMode(mode_name, [mode.value for mode in cls])

    @classmethod
    def from_arguments(cls, mode=None, direction=None):
        if mode:
            return cls.named(mode)
        if direction == 'incoming':
            return cls.CALLERS
        if direction == 'outgoing':
            return cls.CALLEES
        return cls.GRAPH

    @property
    def requires_definition(self):
        return self in (
            QueryMode.GRAPH,
            QueryMode.CALLEES,
            QueryMode.DEFINITION,
            QueryMode.HIERARCHY,
            QueryMode.MEMBERS,
        )


def is_test_helper(file_path):
    return 'TestHelper' in os.path.basename(file_path)


def is_test_file(file_path):
    file_name = os.path.basename(file_path)
    directory_names = os.path.dirname(file_path).split(os.sep)
    return (
        is_test_helper(file_path)
        or file_name.endswith('Tests.swift')
        or file_name.endswith('Test.swift')
        or any(directory_name.endswith('Tests') for directory_name in directory_names)
    )


def matches_name_exactly(symbol, symbol_name):
    return symbol.name == symbol_name or symbol.base_name == symbol_name


def contains_name(symbol, symbol_name):
    return symbol_name in symbol.name


def match_quality(name, query_text):
    lowered_name = name.lower()
    lowered_base_name = lowered_name.split('(', 1)[0]
    lowered_query = query_text.lower()
    if lowered_query in (lowered_name, lowered_base_name):
        return 0
    if lowered_name.startswith(lowered_query):
        return 1
    if lowered_query in lowered_name:
        return 2
    return None


class SymbolDefinition:
    def __init__(self, name, file_path, line, kind):
        self.name = name
        self.file_path = file_path
        self.line = line
        self.kind = kind
        self.usrs = set()
        self.excerpt = None

    @property
    def file_name(self):
        return os.path.basename(self.file_path)


class CodeLocation:
    excerpt = None

    def __init__(self, name, file_path, line):
        self.name = name
        self.file_path = file_path
        self.line = line

    @property
    def file_name(self):
        return os.path.basename(self.file_path)

    def sort_key(self):
        return (self.file_name, self.file_path, self.line, self.name)


class Caller(CodeLocation):
    pass


class Callee(CodeLocation):
    pass


class Reference(CodeLocation):
    def __init__(self, name, file_path, line, roles, container_name):
        super().__init__(name, file_path, line)
        self.roles = roles
        self.container_name = container_name

    @property
    def tag(self):
        parts = []
        if SymbolRole.CALL in self.roles:
            parts.append('call')
        if SymbolRole.REFERENCE in self.roles and SymbolRole.CALL not in self.roles:
            parts.append('reference')
        if SymbolRole.READ in self.roles:
            parts.append('read')
        if SymbolRole.WRITE in self.roles:
            parts.append('write')
        if SymbolRole.DEFINITION in self.roles:
            parts.append('definition')
        if SymbolRole.DECLARATION in self.roles:
            parts.append('declaration')
        return '+'.join(parts) or 'usage'

    def sort_key(self):
        return (self.file_name, self.file_path, self.line, self.tag)


HIERARCHY_RELATIONS = (
    'conformsTo',
    'overrides',
    'inheritedBy',
    'extendedBy',
    'overriddenBy',
)


class HierarchyEdge(CodeLocation):
    def __init__(self, relation, name, file_path, line):
        super().__init__(name, file_path, line)
        self.relation = relation


MEMBER_GROUPS = (
    'Initializers',
    'Properties',
    'Methods',
    'Nested Types',
    'Enum Cases',
    'Other Members',
)


def member_group(kind):
    if kind in (SymbolKind.CONSTRUCTOR, SymbolKind.DESTRUCTOR):
        return 'Initializers'
    return {
        'property': 'Properties',
        'method': 'Methods',
        'type': 'Nested Types',
        'enum case': 'Enum Cases',
    }.get(kind.category, 'Other Members')


class Member(CodeLocation):
    def __init__(self, name, file_path, line, kind):
        super().__init__(name, file_path, line)
        self.kind = kind

    @property
    def group(self):
        return member_group(self.kind)


class SearchMatch(CodeLocation):
    def __init__(self, name, file_path, line, kind, quality):
        super().__init__(name, file_path, line)
        self.kind = kind
        self.quality = quality

    def rank_key(self):
        return (
            self.kind.category_rank,
            self.quality,
            self.name.lower(),
            self.file_name,
            self.line,
        )


class SourceSnippets:
    """Source lines of the files one query cites, read at most once each."""

    def __init__(self, size_limit=1024 * 1024):
        self.size_limit = size_limit
        self.lines_by_path = {}

    def lines_of(self, file_path):
        if file_path not in self.lines_by_path:
            self.lines_by_path[file_path] = self.read_lines(file_path)
        return self.lines_by_path[file_path]

    def read_lines(self, file_path):
        try:
            if os.path.getsize(file_path) > self.size_limit:
                logging.getLogger(__name__).debug(
                    'Not reading %s, it is larger than %s bytes',
                    file_path,
                    self.size_limit,
                )
                return None
            with open(file_path, encoding='utf-8', errors='replace') as source_file:
                return source_file.read().splitlines()
        except OSError as error:
            logging.getLogger(__name__).debug('Cannot read %s: %s', file_path, error)
            return None

    def excerpt(self, file_path, line):
        lines = self.lines_of(file_path)
        if not lines or not 1 <= line <= len(lines):
            return None
        return [
            (line_number, lines[line_number - 1])
            for line_number in range(max(1, line - 1), min(len(lines), line + 1) + 1)
        ]


class IndexQuery:
    def __init__(self, store, configuration, snippets=None):
        self.store = store
        self.configuration = configuration
        self.snippets = snippets or SourceSnippets(configuration.snippet_size_limit)
        self.scanned_units = None
        self.mode_handlers = {
            QueryMode.GRAPH: self.graph_report,
            QueryMode.CALLERS: self.callers_report,
            QueryMode.CALLEES: self.callees_report,
            QueryMode.DEFINITION: self.definition_report,
            QueryMode.REFERENCES: self.references_report,
            QueryMode.HIERARCHY: self.hierarchy_report,
            QueryMode.MEMBERS: self.members_report,
            QueryMode.SEARCH: self.search_report,
            QueryMode.DUMP: self.dump_report,
        }

    def run(self, symbol_name, mode=QueryMode.GRAPH, file_filter=None, include_source=False):
        if not isinstance(symbol_name, str) or not symbol_name.strip():
            raise InvalidParameters('symbol cannot be empty.')
        if file_filter is not None and not isinstance(file_filter, str):
            raise InvalidParameters('file must be a string.')
        logging.getLogger(__name__).debug(
            'Index query symbol=%r file=%s mode=%s',
            symbol_name,
            file_filter or 'all',
            mode.value,
        )
        report_text, cited_items = self.mode_handlers[mode](
            symbol_name,
            file_filter,
            include_source,
        )
        return report_text + report.staleness_warning(
            self.newest_stale_source(cited_items)
        )

    def with_excerpts(self, items, include_source):
        if include_source:
            for item in items:
                item.excerpt = self.snippets.excerpt(item.file_path, item.line)
        return items

    def units_with_occurrences(self):
        if self.scanned_units is None:
            self.scanned_units = []
            for unit in self.store.units():
                try:
                    occurrences = self.store.occurrences(unit)
                except IndexStoreError as error:
                    logging.getLogger(__name__).debug(
                        'Skipping unreadable unit %s: %s',
                        unit.unit_name,
                        error,
                    )
                    continue
                self.scanned_units.append((unit, occurrences))
        return self.scanned_units

    def occurrences_in(self, file_filter=None, file_paths=None):
        for unit, occurrences in self.units_with_occurrences():
            if file_filter and not unit.file_path.endswith(file_filter):
                continue
            if file_paths is not None and unit.file_path not in file_paths:
                continue
            yield from occurrences

    def find_definitions(self, symbol_name, file_filter=None):
        for symbol_matches in (matches_name_exactly, contains_name):
            definitions_by_location = {}
            for unit, occurrences in self.units_with_occurrences():
                if file_filter and not unit.file_path.endswith(file_filter):
                    continue
                if not file_filter and is_test_helper(unit.file_path):
                    continue
                for occurrence in occurrences:
                    if SymbolRole.DEFINITION not in occurrence.roles:
                        continue
                    if not symbol_matches(occurrence.symbol, symbol_name):
                        continue
                    location = (unit.file_path, occurrence.line)
                    if location not in definitions_by_location:
                        definitions_by_location[location] = SymbolDefinition(
                            occurrence.symbol.name,
                            unit.file_path,
                            occurrence.line,
                            occurrence.symbol.kind,
                        )
                    definitions_by_location[location].usrs.add(occurrence.symbol.usr)
            if definitions_by_location:
                return sorted(
                    definitions_by_location.values(),
                    key=lambda definition: (
                        definition.kind is SymbolKind.EXTENSION,
                        definition.file_name,
                        definition.file_path,
                        definition.line,
                    ),
                )
        return []

    def suggestions_for(self, symbol_name, file_filter=None):
        ranked_names = {}
        for occurrence in self.occurrences_in(file_filter):
            symbol = occurrence.symbol
            if SymbolRole.DEFINITION not in occurrence.roles or symbol.is_accessor:
                continue
            if symbol.kind in (SymbolKind.PARAMETER, SymbolKind.COMMENT_TAG):
                continue
            quality = match_quality(symbol.name, symbol_name)
            if quality is None:
                continue
            rank = (quality, symbol.kind.category_rank, symbol.name)
            ranked_names[symbol.name] = min(rank, ranked_names.get(symbol.name, rank))
        ranked = sorted(ranked_names.values())
        return [name for quality, category_rank, name in ranked][
            : self.configuration.suggestion_limit
        ]

    def anchor_definitions(self, symbol_name, file_filter, mode):
        definitions = self.find_definitions(symbol_name, file_filter)
        if not definitions and mode.requires_definition:
            raise DefinitionNotFound(
                symbol_name,
                file_filter=file_filter,
                suggestions=self.suggestions_for(symbol_name, file_filter),
            )
        return definitions

    def equivalent_usrs(self, definitions):
        if not definitions:
            return set()
        anchor_name = definitions[0].name
        usrs = set()
        for definition in definitions:
            if definition.name == anchor_name:
                usrs.update(definition.usrs)
        return usrs

    def usage_passes(self, symbol_name, usrs):
        if usrs:
            return [lambda symbol: symbol.usr in usrs]
        return [
            lambda symbol: matches_name_exactly(symbol, symbol_name),
            lambda symbol: contains_name(symbol, symbol_name),
        ]

    def capped(self, items, is_name_based):
        limit = self.configuration.name_based_result_limit
        if is_name_based and len(items) > limit:
            return items[:limit], True
        return items, False

    def find_callers(self, symbol_name, usrs):
        callers = []
        for symbol_matches in self.usage_passes(symbol_name, usrs):
            callers_by_key = {}
            for occurrence in self.occurrences_in():
                if not symbol_matches(occurrence.symbol):
                    continue
                if not occurrence.roles & (SymbolRole.CALL | SymbolRole.REFERENCE):
                    continue
                caller_name = occurrence.container_name()
                if caller_name is None:
                    continue
                key = (occurrence.file_path, occurrence.line, caller_name)
                callers_by_key.setdefault(
                    key,
                    Caller(caller_name, occurrence.file_path, occurrence.line),
                )
            callers = sorted(callers_by_key.values(), key=Caller.sort_key)
            if callers:
                break
        return self.capped(callers, is_name_based=not usrs)

    def find_callees(self, definitions, usrs):
        callees_by_key = {}
        definition_paths = {definition.file_path for definition in definitions}
        for occurrence in self.occurrences_in(file_paths=definition_paths):
            if SymbolRole.CALL not in occurrence.roles or occurrence.symbol.is_accessor:
                continue
            callers = occurrence.related_symbols(SymbolRole.CALLED_BY)
            if not any(caller.usr in usrs for caller in callers):
                continue
            key = (occurrence.file_path, occurrence.line, occurrence.symbol.name)
            callees_by_key.setdefault(
                key,
                Callee(occurrence.symbol.name, occurrence.file_path, occurrence.line),
            )
        return sorted(
            callees_by_key.values(),
            key=lambda callee: (callee.line, callee.name, callee.file_path),
        )

    def find_references(self, symbol_name, usrs):
        references = []
        for symbol_matches in self.usage_passes(symbol_name, usrs):
            references_by_key = {}
            for occurrence in self.occurrences_in():
                if not symbol_matches(occurrence.symbol):
                    continue
                if not occurrence.roles & REFERENCE_ROLES:
                    continue
                if (
                    SymbolRole.DEFINITION in occurrence.roles
                    and not occurrence.roles & USAGE_ROLES
                ):
                    continue
                reference = Reference(
                    occurrence.symbol.name,
                    occurrence.file_path,
                    occurrence.line,
                    occurrence.roles,
                    occurrence.container_name(),
                )
                references_by_key.setdefault(
                    (occurrence.file_path, occurrence.line, reference.tag),
                    reference,
                )
            references = sorted(references_by_key.values(), key=Reference.sort_key)
            if references:
                break
        return self.capped(references, is_name_based=not usrs)

    def find_hierarchy(self, usrs):
        edges_by_key = {}

        def add_edge(relation, symbol, occurrence):
            key = (relation, symbol.name, occurrence.file_path, occurrence.line)
            edges_by_key.setdefault(
                key,
                HierarchyEdge(relation, symbol.name, occurrence.file_path, occurrence.line),
            )

        for occurrence in self.occurrences_in():
            is_target = occurrence.symbol.usr in usrs
            for relation in occurrence.relations:
                points_at_target = relation.symbol.usr in usrs
                if is_target and SymbolRole.BASE_OF in relation.roles:
                    add_edge('inheritedBy', relation.symbol, occurrence)
                if is_target and SymbolRole.OVERRIDE_OF in relation.roles:
                    add_edge('overrides', relation.symbol, occurrence)
                if is_target and SymbolRole.EXTENDED_BY in relation.roles:
                    add_edge('extendedBy', relation.symbol, occurrence)
                if points_at_target and not is_target:
                    if SymbolRole.BASE_OF in relation.roles:
                        add_edge('conformsTo', occurrence.symbol, occurrence)
                    if SymbolRole.OVERRIDE_OF in relation.roles:
                        add_edge('overriddenBy', occurrence.symbol, occurrence)
                    if (
                        SymbolRole.EXTENDED_BY in relation.roles
                        and occurrence.symbol.kind is SymbolKind.EXTENSION
                    ):
                        add_edge('extendedBy', occurrence.symbol, occurrence)
        return sorted(
            edges_by_key.values(),
            key=lambda edge: (HIERARCHY_RELATIONS.index(edge.relation),) + edge.sort_key(),
        )

    def extension_usrs(self, usrs):
        extension_usrs = set()
        for occurrence in self.occurrences_in():
            for relation in occurrence.relations:
                if SymbolRole.EXTENDED_BY not in relation.roles:
                    continue
                if occurrence.symbol.usr in usrs:
                    extension_usrs.add(relation.symbol.usr)
                elif (
                    relation.symbol.usr in usrs
                    and occurrence.symbol.kind is SymbolKind.EXTENSION
                ):
                    extension_usrs.add(occurrence.symbol.usr)
        return extension_usrs

    def find_members(self, usrs):
        owner_usrs = set(usrs) | self.extension_usrs(usrs)
        members_by_key = {}
        for occurrence in self.occurrences_in():
            symbol = occurrence.symbol
            if SymbolRole.DEFINITION not in occurrence.roles:
                continue
            if symbol.is_accessor or SymbolRole.ACCESSOR_OF in occurrence.roles:
                continue
            owners = occurrence.related_symbols(SymbolRole.CHILD_OF)
            if not any(owner.usr in owner_usrs for owner in owners):
                continue
            key = (symbol.name, occurrence.file_path, occurrence.line)
            members_by_key.setdefault(
                key,
                Member(symbol.name, occurrence.file_path, occurrence.line, symbol.kind),
            )
        return sorted(
            members_by_key.values(),
            key=lambda member: (MEMBER_GROUPS.index(member.group),) + member.sort_key(),
        )

    def find_matches(self, symbol_name, file_filter=None):
        matches_by_key = {}
        for occurrence in self.occurrences_in(file_filter):
            symbol = occurrence.symbol
            if SymbolRole.DEFINITION not in occurrence.roles:
                continue
            if is_test_file(occurrence.file_path) or symbol.is_accessor:
                continue
            if symbol.kind in (SymbolKind.PARAMETER, SymbolKind.COMMENT_TAG):
                continue
            quality = match_quality(symbol.name, symbol_name)
            if quality is None:
                continue
            key = (symbol.name, occurrence.file_path, occurrence.line)
            matches_by_key.setdefault(
                key,
                SearchMatch(
                    symbol.name,
                    occurrence.file_path,
                    occurrence.line,
                    symbol.kind,
                    quality,
                ),
            )
        matches = sorted(matches_by_key.values(), key=SearchMatch.rank_key)
        return matches[: self.configuration.search_result_limit], len(matches)

    def find_occurrences(self, symbol_name, file_filter=None):
        found = []
        for occurrence in self.occurrences_in(file_filter):
            if symbol_name in occurrence.symbol.name:
                found.append(occurrence)
                if len(found) >= self.configuration.dump_result_limit:
                    break
        return sorted(
            found,
            key=lambda occurrence: (
                occurrence.file_name,
                occurrence.file_path or '',
                occurrence.line,
                occurrence.column,
                occurrence.symbol.name,
            ),
        )

    def definition_report(self, symbol_name, file_filter, include_source):
        definitions = self.anchor_definitions(
            symbol_name,
            file_filter,
            QueryMode.DEFINITION,
        )
        self.with_excerpts(definitions, include_source)
        return report.definition_report(definitions), definitions

    def callers_report(self, symbol_name, file_filter, include_source):
        definitions = self.anchor_definitions(
            symbol_name,
            file_filter,
            QueryMode.CALLERS,
        )
        callers, is_capped = self.find_callers(
            symbol_name,
            self.equivalent_usrs(definitions),
        )
        cited_items = self.with_excerpts(definitions + callers, include_source)
        return (
            report.callers_report(
                symbol_name,
                definitions,
                callers,
                is_capped,
                self.configuration.name_based_result_limit,
            ),
            cited_items,
        )

    def callees_report(self, symbol_name, file_filter, include_source):
        definitions = self.anchor_definitions(
            symbol_name,
            file_filter,
            QueryMode.CALLEES,
        )
        callees = self.find_callees(definitions, self.equivalent_usrs(definitions))
        cited_items = self.with_excerpts(definitions + callees, include_source)
        return report.callees_report(definitions, callees), cited_items

    def graph_report(self, symbol_name, file_filter, include_source):
        definitions = self.anchor_definitions(
            symbol_name,
            file_filter,
            QueryMode.GRAPH,
        )
        usrs = self.equivalent_usrs(definitions)
        callers, is_capped = self.find_callers(symbol_name, usrs)
        callees = self.find_callees(definitions, usrs)
        cited_items = self.with_excerpts(definitions + callers + callees, include_source)
        return report.graph_report(definitions, callers, callees), cited_items

    def references_report(self, symbol_name, file_filter, include_source):
        definitions = self.anchor_definitions(
            symbol_name,
            file_filter,
            QueryMode.REFERENCES,
        )
        references, is_capped = self.find_references(
            symbol_name,
            self.equivalent_usrs(definitions),
        )
        cited_items = self.with_excerpts(definitions + references, include_source)
        return (
            report.references_report(
                symbol_name,
                definitions,
                references,
                is_capped,
                self.configuration.name_based_result_limit,
            ),
            cited_items,
        )

    def hierarchy_report(self, symbol_name, file_filter, include_source):
        definitions = self.anchor_definitions(
            symbol_name,
            file_filter,
            QueryMode.HIERARCHY,
        )
        edges = self.find_hierarchy(self.equivalent_usrs(definitions))
        cited_items = self.with_excerpts(definitions + edges, include_source)
        return report.hierarchy_report(definitions, edges), cited_items

    def members_report(self, symbol_name, file_filter, include_source):
        definitions = self.anchor_definitions(
            symbol_name,
            file_filter,
            QueryMode.MEMBERS,
        )
        members = self.find_members(self.equivalent_usrs(definitions))
        cited_items = self.with_excerpts(definitions + members, include_source)
        return report.members_report(definitions, members), cited_items

    def search_report(self, symbol_name, file_filter, include_source):
        matches, total_count = self.find_matches(symbol_name, file_filter)
        self.with_excerpts(matches, include_source)
        return (
            report.search_report(
                symbol_name,
                matches,
                total_count,
                self.configuration.search_result_limit,
            ),
            matches,
        )

    def dump_report(self, symbol_name, file_filter, include_source):
        occurrences = self.find_occurrences(symbol_name, file_filter)
        return (
            report.dump_report(
                symbol_name,
                occurrences,
                self.configuration.dump_result_limit,
            ),
            occurrences,
        )

    def newest_stale_source(self, cited_items):
        store_time = self.store.modification_time()
        if store_time is None:
            return None
        newest_path = None
        newest_time = store_time
        for file_path in sorted({item.file_path for item in cited_items if item.file_path}):
            try:
                modification_time = os.path.getmtime(file_path)
            except OSError:
                continue
            if modification_time > newest_time:
                newest_path = file_path
                newest_time = modification_time
        return newest_path


def run_query(
    store,
    configuration,
    symbol_name,
    mode=None,
    file_filter=None,
    include_source=False,
    direction=None,
):
    query_mode = mode if isinstance(mode, QueryMode) else QueryMode.from_arguments(mode, direction)
    return IndexQuery(store, configuration).run(
        symbol_name,
        mode=query_mode,
        file_filter=file_filter,
        include_source=include_source,
    )
