from listall.devtools.indexstore.model import IndexUnit
from listall.devtools.indexstore.model import Symbol
from listall.devtools.indexstore.model import SymbolKind
from listall.devtools.indexstore.model import SymbolOccurrence
from listall.devtools.indexstore.model import SymbolRelation
from listall.devtools.indexstore.model import SymbolRole
from listall.devtools.indexstore.model import SymbolSubkind
from listall.devtools.indexstore.query import IndexQuery
from listall.devtools.indexstore.query import QueryMode
from listall.devtools.indexstore.query import SourceSnippets
from listall.devtools.indexstore.query import run_query
from listall.devtools.indexstore.store import IndexStore
from listall.devtools.indexstore.store import SnapshotIndexStore
from listall.devtools.indexstore.store import find_index_store_path
from listall.devtools.indexstore.store import open_index_store
from listall.devtools.indexstore.store import opened_index_store
from listall.devtools.indexstore.store import write_snapshot

__all__ = [
    'IndexQuery',
    'IndexStore',
    'IndexUnit',
    'QueryMode',
    'SnapshotIndexStore',
    'SourceSnippets',
    'Symbol',
    'SymbolKind',
    'SymbolOccurrence',
    'SymbolRelation',
    'SymbolRole',
    'SymbolSubkind',
    'find_index_store_path',
    'open_index_store',
    'opened_index_store',
    'run_query',
    'write_snapshot',
]
