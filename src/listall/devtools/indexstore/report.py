"""Markdown rendering of index query results.

Every function here is pure: the same results always render to the same
text.
"""

import itertools
import os


HIERARCHY_TITLES = {
    'conformsTo': 'Conforms To / Inherits From',
    'overrides': 'Overrides',
    'inheritedBy': 'Inherited By',
    'extendedBy': 'Extended By',
    'overriddenBy': 'Overridden By',
}


def capped_notice(limit):
    return (
        '\n_Results capped at %s. Use a more specific symbol name or add file '
        'filter to narrow results._\n' % limit
    )


def excerpt_lines(item):
    if not item.excerpt:
        return []
    return (
        ['  ```']
        + ['  %s: %s' % (line_number, text) for line_number, text in item.excerpt]
        + ['  ```']
    )


def grouped_by_file(items, describe):
    lines = []
    ordered_items = sorted(items, key=lambda item: (item.file_name, item.line))
    for file_name, file_items in itertools.groupby(
        ordered_items,
        key=lambda item: item.file_name,
    ):
        lines.append('**%s**' % file_name)
        for item in file_items:
            lines.append('- %s' % describe(item))
            lines.extend(excerpt_lines(item))
        lines.append('')
    return '\n'.join(lines) + '\n'


def definition_heading(definitions, title=None, show_usrs=False):
    definition = definitions[0]
    heading = '## %s%s\n' % (title or '', definition.name)
    heading += 'Defined in: %s:%s\n' % (definition.file_name, definition.line)
    if show_usrs:
        heading += 'USR: %s\n' % ', '.join(sorted(definition.usrs))
    return heading + '\n'


def definition_report(definitions):
    text = '## Symbol: %s\n\n' % definitions[0].name
    for definition in definitions:
        text += '- %s in %s:%s' % (
            definition.kind.display_name,
            definition.file_name,
            definition.line,
        )
        if len(definition.usrs) > 1:
            text += ' (%s build targets)' % len(definition.usrs)
        text += '\n'
        text += ''.join('%s\n' % line for line in excerpt_lines(definition))
    return text


def callers_section(callers):
    text = '### Incoming Callers (%s)\n\n' % len(callers)
    if not callers:
        return text + '_No callers found_\n'
    return text + grouped_by_file(
        callers,
        lambda caller: '`%s` (line %s)' % (caller.name, caller.line),
    )


def callees_section(callees):
    text = '### Outgoing Callees (%s)\n\n' % len(callees)
    if not callees:
        return text + '_No callees found_\n'
    return text + grouped_by_file(
        callees,
        lambda callee: '`%s` (line %s)' % (callee.name, callee.line),
    )


def callers_report(symbol_name, definitions, callers, is_capped, limit):
    if definitions:
        text = definition_heading(definitions)
    else:
        text = '## Callers of: %s (name-based search)\n\n' % symbol_name
    text += callers_section(callers)
    if is_capped:
        text += capped_notice(limit)
    return text


def callees_report(definitions, callees):
    return definition_heading(definitions) + callees_section(callees)


def graph_report(definitions, callers, callees):
    return (
        definition_heading(definitions, show_usrs=True)
        + callers_section(callers)
        + callees_section(callees)
    )


def describe_reference(reference):
    description = 'Line %s: %s' % (reference.line, reference.tag)
    if reference.container_name:
        description += ' in %s' % reference.container_name
    return description


def references_report(symbol_name, definitions, references, is_capped, limit):
    if definitions:
        text = definition_heading(definitions, title='References to: ')
    else:
        text = '## References to: %s (name-based search)\n\n' % symbol_name
    if not references:
        return text + '_No references found_\n'
    file_count = len({reference.file_name for reference in references})
    text += 'Found %s references across %s file%s:\n\n' % (
        len(references),
        file_count,
        '' if file_count == 1 else 's',
    )
    text += grouped_by_file(references, describe_reference)
    if is_capped:
        text += capped_notice(limit)
    return text


def hierarchy_report(definitions, edges):
    text = definition_heading(definitions, title='Hierarchy of: ')
    for relation, title in HIERARCHY_TITLES.items():
        relation_edges = [edge for edge in edges if edge.relation == relation]
        text += '### %s (%s)\n\n' % (title, len(relation_edges))
        if relation_edges:
            text += grouped_by_file(
                relation_edges,
                lambda edge: '`%s` (line %s)' % (edge.name, edge.line),
            )
        else:
            text += '_None_\n\n'
    return text


def members_report(definitions, members):
    text = definition_heading(definitions, title='Members of: ')
    if not members:
        return text + '_No members found_\n'
    text += 'Found %s members\n\n' % len(members)
    for group, group_members in itertools.groupby(
        members,
        key=lambda member: member.group,
    ):
        group_members = list(group_members)
        text += '### %s (%s)\n\n' % (group, len(group_members))
        text += grouped_by_file(
            group_members,
            lambda member: '`%s` (line %s)' % (member.name, member.line),
        )
    return text


def search_report(symbol_name, matches, total_count, limit):
    text = '## Search: %s\n\n' % symbol_name
    if not matches:
        return text + '_No matches found_\n'
    if total_count > len(matches):
        text += 'Found %s matches (showing the best %s):\n\n' % (total_count, limit)
    else:
        text += 'Found %s matches:\n\n' % total_count
    for match in matches:
        text += '- `%s` (%s) in %s:%s\n' % (
            match.name,
            match.kind.display_name,
            match.file_name,
            match.line,
        )
        text += ''.join('%s\n' % line for line in excerpt_lines(match))
    return text


def dump_report(symbol_name, occurrences, limit):
    text = '## Occurrences matching: %s (%s, limit %s)\n\n' % (
        symbol_name,
        len(occurrences),
        limit,
    )
    if not occurrences:
        return text + '_No occurrences found_\n'
    for file_name, file_occurrences in itertools.groupby(
        occurrences,
        key=lambda occurrence: occurrence.file_name,
    ):
        text += '**%s**\n' % file_name
        for occurrence in file_occurrences:
            symbol = occurrence.symbol
            text += '- %s:%s `%s` [%s/%s] roles: %s\n' % (
                occurrence.line,
                occurrence.column,
                symbol.name,
                symbol.kind.display_name,
                symbol.subkind.display_name,
                ', '.join(occurrence.roles.names()) or 'none',
            )
            text += '  USR: %s\n' % symbol.usr
            for relation in occurrence.relations:
                text += '  - %s -> `%s` (%s)\n' % (
                    ', '.join(relation.roles.names()) or 'none',
                    relation.symbol.name,
                    relation.symbol.usr,
                )
        text += '\n'
    return text


def staleness_warning(stale_source_path):
    if stale_source_path is None:
        return ''
    return (
        '\n> Warning: the index store may be stale. %s changed after the last '
        'index build. Rebuild the project in Xcode to refresh these results.\n'
        % os.path.basename(stale_source_path)
    )
