from reahl.tofu import expected

from listall.devtools.errors import IndexStoreError
from listall.devtools.indexstore.libindexstore import CallbackCollector
from listall.devtools.indexstore.libindexstore import known_roles
from listall.devtools.indexstore.libindexstore import library_candidates
from listall.devtools.indexstore.libindexstore import load_library
from listall.devtools.indexstore.model import SymbolRole


def test_configured_library_is_the_only_candidate():
    assert library_candidates('/opt/lib/libIndexStore.dylib') == [
        '/opt/lib/libIndexStore.dylib'
    ]


def test_library_that_cannot_be_loaded_is_an_index_store_error():
    def check_error(error):
        assert 'Could not load libIndexStore (tried /nonexistent/libIndexStore.dylib)' in str(error)
        assert 'LISTALL_MCP_LIBINDEXSTORE' in error.remediation

    with expected(IndexStoreError, test=check_error):
        load_library('/nonexistent/libIndexStore.dylib')


def test_role_bits_unknown_to_this_version_are_ignored():
    role_bits = SymbolRole.CALL.value | SymbolRole.CALLED_BY.value | (1 << 40)

    assert known_roles(role_bits) == SymbolRole.CALL | SymbolRole.CALLED_BY


def test_errors_raised_while_visiting_stop_the_iteration_and_are_kept():
    visited = []

    def visit(value):
        if value == 2:
            raise ValueError('bad handle')
        visited.append(value)

    collector = CallbackCollector(visit)
    continue_flags = [collector(None, value) for value in (1, 2)]

    assert continue_flags == [True, False]
    assert visited == [1]
    with expected(ValueError):
        collector.raise_errors()
