import contextlib
import json
import logging
import os

from listall.devtools.errors import IndexStoreError
from listall.devtools.errors import IndexStoreNotFound
from listall.devtools.indexstore.model import IndexUnit
from listall.devtools.indexstore.model import Symbol
from listall.devtools.indexstore.model import SymbolKind
from listall.devtools.indexstore.model import SymbolOccurrence
from listall.devtools.indexstore.model import SymbolRelation
from listall.devtools.indexstore.model import SymbolRole
from listall.devtools.indexstore.model import SymbolSubkind


class IndexStore:
    def __init__(self, path):
        self.path = path

    def units(self):
        raise NotImplementedError()

    def occurrences(self, unit):
        raise NotImplementedError()

    def modification_time(self):
        if self.path is None:
            return None
        try:
            return os.path.getmtime(self.path)
        except OSError:
            return None

    def close(self):
        pass


class SnapshotIndexStore(IndexStore):
    """An index store kept as a JSON document.

    The document holds a ``units`` list (``name``, ``record``, ``file``) and a
    ``records`` mapping from record name to its occurrences. Roles are given
    as lists of role names such as ``["definition", "childOf"]``.
    """

    def __init__(self, document, path=None):
        super().__init__(path)
        try:
            self.unit_list = [
                IndexUnit(unit['name'], unit['record'], unit['file'])
                for unit in document['units']
            ]
            self.records = document.get('records', {})
        except (KeyError, TypeError) as error:
            raise IndexStoreError('Malformed index snapshot: %s' % error) from error

    @classmethod
    def load(cls, path):
        try:
            with open(path, encoding='utf-8') as snapshot_file:
                return cls(json.load(snapshot_file), path=path)
        except (OSError, ValueError) as error:
            raise IndexStoreError(
                'Could not read index snapshot %s: %s' % (path, error)
            ) from error

    def units(self):
        return list(self.unit_list)

    def occurrences(self, unit):
        if unit.record_name not in self.records:
            raise IndexStoreError('Missing record %s' % unit.record_name)
        try:
            return [
                occurrence_from_document(occurrence_document, unit.file_path)
                for occurrence_document in self.records[unit.record_name]
            ]
        except (KeyError, TypeError, ValueError) as error:
            raise IndexStoreError(
                'Corrupt record %s: %s' % (unit.record_name, error)
            ) from error


def symbol_from_document(document):
    return Symbol(
        document['name'],
        document['usr'],
        kind=SymbolKind.named(document.get('kind', 'unknown')),
        subkind=SymbolSubkind.named(document.get('subkind', 'none')),
    )


def occurrence_from_document(document, file_path):
    return SymbolOccurrence(
        symbol_from_document(document['symbol']),
        SymbolRole.from_names(document['roles']),
        document['line'],
        document.get('column', 1),
        relations=[
            SymbolRelation(
                SymbolRole.from_names(relation['roles']),
                symbol_from_document(relation['symbol']),
            )
            for relation in document.get('relations', [])
        ],
        file_path=file_path,
    )


def symbol_document(symbol):
    return {
        'name': symbol.name,
        'usr': symbol.usr,
        'kind': symbol.kind.display_name,
        'subkind': symbol.subkind.display_name,
    }


def occurrence_document(occurrence):
    return {
        'symbol': symbol_document(occurrence.symbol),
        'roles': occurrence.roles.names(),
        'line': occurrence.line,
        'column': occurrence.column,
        'relations': [
            {
                'roles': relation.roles.names(),
                'symbol': symbol_document(relation.symbol),
            }
            for relation in occurrence.relations
        ],
    }


def snapshot_document(store):
    units = []
    records = {}
    for unit in store.units():
        try:
            occurrences = store.occurrences(unit)
        except IndexStoreError as error:
            logging.getLogger(__name__).debug(
                'Leaving %s out of the snapshot: %s',
                unit.unit_name,
                error,
            )
            continue
        units.append(
            {
                'name': unit.unit_name,
                'record': unit.record_name,
                'file': unit.file_path,
            }
        )
        records[unit.record_name] = [
            occurrence_document(occurrence) for occurrence in occurrences
        ]
    return {'units': units, 'records': records}


def write_snapshot(store, path):
    with open(path, 'w', encoding='utf-8') as snapshot_file:
        json.dump(snapshot_document(store), snapshot_file, indent=2, sort_keys=True)
    return path


def find_index_store_path(configuration):
    if configuration.index_store_path:
        index_store_path = os.path.expanduser(configuration.index_store_path)
        if not os.path.exists(index_store_path):
            raise IndexStoreNotFound(index_store_path)
        return index_store_path
    for project_directory in configuration.project_derived_data_directories():
        candidate = os.path.join(project_directory, 'Index.noindex', 'DataStore')
        if os.path.isdir(os.path.join(candidate, 'v5')):
            return candidate
    raise IndexStoreNotFound(configuration.expected_index_store_location())


def open_index_store(configuration):
    index_store_path = find_index_store_path(configuration)
    logging.getLogger(__name__).debug('Opening index store %s', index_store_path)
    if os.path.isfile(index_store_path):
        return SnapshotIndexStore.load(index_store_path)
    from listall.devtools.indexstore.libindexstore import LibIndexStore

    return LibIndexStore.open(index_store_path, configuration)


@contextlib.contextmanager
def opened_index_store(configuration, store_opener=open_index_store):
    store = store_opener(configuration)
    try:
        yield store
    finally:
        store.close()
