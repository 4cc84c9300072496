import json
import os
import shutil
import tempfile

from reahl.tofu import Fixture
from reahl.tofu import expected
from reahl.tofu import tear_down
from reahl.tofu import with_fixtures

from listall.devtools.configuration import DevToolsConfiguration
from listall.devtools.errors import IndexStoreError
from listall.devtools.errors import IndexStoreNotFound
from listall.devtools.indexstore.model import SymbolKind
from listall.devtools.indexstore.model import SymbolRole
from listall.devtools.indexstore.model import SymbolSubkind
from listall.devtools.indexstore.store import SnapshotIndexStore
from listall.devtools.indexstore.store import find_index_store_path
from listall.devtools.indexstore.store import open_index_store
from listall.devtools.indexstore.store import opened_index_store
from listall.devtools.indexstore.store import write_snapshot


def repository_document():
    repository = {'name': 'DataRepository', 'usr': 's:DR', 'kind': 'class'}
    return {
        'units': [
            {
                'name': 'DataRepository.o',
                'record': 'DataRepository.swift-2F1A',
                'file': '/work/ListAll/ListAll/Services/DataRepository.swift',
            },
        ],
        'records': {
            'DataRepository.swift-2F1A': [
                {
                    'symbol': {
                        'name': 'getter:lists',
                        'usr': 's:DR.lists.get',
                        'kind': 'instanceMethod',
                        'subkind': 'accessorGetter',
                    },
                    'roles': ['definition', 'implicit', 'accessorOf'],
                    'line': 12,
                    'column': 9,
                    'relations': [{'roles': ['childOf'], 'symbol': repository}],
                },
            ],
        },
    }


class SnapshotFixture(Fixture):
    def new_directory(self):
        return tempfile.mkdtemp(prefix='listall-snapshot-')

    @tear_down
    def remove_directory(self):
        shutil.rmtree(self.directory)

    def path_of(self, *relative_path):
        return os.path.join(self.directory, *relative_path)

    def write_json(self, file_name, document):
        with open(self.path_of(file_name), 'w', encoding='utf-8') as json_file:
            json.dump(document, json_file)
        return self.path_of(file_name)


@with_fixtures(SnapshotFixture)
def test_loaded_snapshot_yields_typed_occurrences(fixture):
    store = SnapshotIndexStore.load(fixture.write_json('index.json', repository_document()))

    [unit] = store.units()
    [occurrence] = store.occurrences(unit)

    assert unit.file_name == 'DataRepository.swift'
    assert occurrence.symbol.kind is SymbolKind.INSTANCE_METHOD
    assert occurrence.symbol.subkind is SymbolSubkind.ACCESSOR_GETTER
    assert occurrence.symbol.is_accessor
    assert occurrence.roles == (
        SymbolRole.DEFINITION | SymbolRole.IMPLICIT | SymbolRole.ACCESSOR_OF
    )
    assert occurrence.file_path == unit.file_path
    assert occurrence.related_symbols(SymbolRole.CHILD_OF)[0].name == 'DataRepository'
    assert store.modification_time() == os.path.getmtime(fixture.path_of('index.json'))


@with_fixtures(SnapshotFixture)
def test_unreadable_snapshot_file_is_an_index_store_error(fixture):
    with open(fixture.path_of('index.json'), 'w', encoding='utf-8') as snapshot_file:
        snapshot_file.write('{"units": [')

    with expected(IndexStoreError):
        SnapshotIndexStore.load(fixture.path_of('index.json'))


def test_record_with_unknown_role_is_corrupt():
    document = repository_document()
    document['records']['DataRepository.swift-2F1A'][0]['roles'] = ['teleports']
    store = SnapshotIndexStore(document)

    def check_message(error):
        assert str(error).startswith('Corrupt record DataRepository.swift-2F1A')

    with expected(IndexStoreError, test=check_message):
        store.occurrences(store.units()[0])


@with_fixtures(SnapshotFixture)
def test_written_snapshot_can_be_read_back_identically(fixture):
    original_document = repository_document()
    snapshot_path = write_snapshot(
        SnapshotIndexStore(original_document),
        fixture.path_of('copy.json'),
    )

    with open(snapshot_path, encoding='utf-8') as snapshot_file:
        written_document = json.load(snapshot_file)

    [occurrence_document] = written_document['records']['DataRepository.swift-2F1A']
    assert written_document['units'] == original_document['units']
    assert occurrence_document['roles'] == ['definition', 'implicit', 'accessorOf']
    assert occurrence_document['relations'][0]['symbol']['subkind'] == 'none'


@with_fixtures(SnapshotFixture)
def test_index_store_is_found_under_derived_data(fixture):
    data_store = fixture.path_of('ListAll-bqxzfyhvkemnwd', 'Index.noindex', 'DataStore')
    os.makedirs(os.path.join(data_store, 'v5'))
    os.makedirs(fixture.path_of('OtherApp-aaaa', 'Index.noindex', 'DataStore', 'v5'))

    assert find_index_store_path(
        DevToolsConfiguration(derived_data_path=fixture.directory)
    ) == data_store


@with_fixtures(SnapshotFixture)
def test_missing_index_store_names_the_expected_location(fixture):
    def check_remediation(error):
        assert 'Expected location: %s' % os.path.join(
            fixture.directory,
            'ListAll-*',
            'Index.noindex',
            'DataStore',
        ) in error.remediation

    with expected(IndexStoreNotFound, test=check_remediation):
        find_index_store_path(DevToolsConfiguration(derived_data_path=fixture.directory))


@with_fixtures(SnapshotFixture)
def test_configured_index_store_path_must_exist(fixture):
    with expected(IndexStoreNotFound):
        find_index_store_path(
            DevToolsConfiguration(index_store_path=fixture.path_of('missing.json'))
        )


@with_fixtures(SnapshotFixture)
def test_configured_snapshot_file_is_opened_as_a_snapshot(fixture):
    snapshot_path = fixture.write_json('index.json', repository_document())

    store = open_index_store(DevToolsConfiguration(index_store_path=snapshot_path))

    assert isinstance(store, SnapshotIndexStore)
    assert store.path == snapshot_path


def test_opened_index_store_is_closed_when_the_query_fails():
    class ClosingStore(SnapshotIndexStore):
        is_closed = False

        def close(self):
            self.is_closed = True

    store = ClosingStore(repository_document())

    with expected(RuntimeError):
        with opened_index_store(DevToolsConfiguration(), lambda configuration: store):
            raise RuntimeError('query failed')

    assert store.is_closed
