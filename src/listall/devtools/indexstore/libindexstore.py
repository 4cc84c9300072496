import ctypes
import ctypes.util
import logging
import os
import subprocess

from listall.devtools.errors import IndexStoreError
from listall.devtools.indexstore.model import IndexUnit
from listall.devtools.indexstore.model import Symbol
from listall.devtools.indexstore.model import SymbolKind
from listall.devtools.indexstore.model import SymbolOccurrence
from listall.devtools.indexstore.model import SymbolRelation
from listall.devtools.indexstore.model import SymbolRole
from listall.devtools.indexstore.model import SymbolSubkind
from listall.devtools.indexstore.store import IndexStore


DEFAULT_LIBRARY_PATH = (
    '/Applications/Xcode.app/Contents/Developer/Toolchains/'
    'XcodeDefault.xctoolchain/usr/lib/libIndexStore.dylib'
)

UNIT_DEPENDENCY_RECORD = 2


class StringRef(ctypes.Structure):
    _fields_ = [
        ('data', ctypes.c_void_p),
        ('length', ctypes.c_size_t),
    ]

    def as_text(self):
        if not self.data or not self.length:
            return ''
        return ctypes.string_at(self.data, self.length).decode(
            'utf-8',
            errors='replace',
        )


UnitNameApplier = ctypes.CFUNCTYPE(ctypes.c_bool, ctypes.c_void_p, StringRef)
HandleApplier = ctypes.CFUNCTYPE(ctypes.c_bool, ctypes.c_void_p, ctypes.c_void_p)

FUNCTION_PROTOTYPES = {
    'indexstore_store_create': (
        ctypes.c_void_p,
        [ctypes.c_char_p, ctypes.POINTER(ctypes.c_void_p)],
    ),
    'indexstore_store_dispose': (None, [ctypes.c_void_p]),
    'indexstore_store_units_apply_f': (
        ctypes.c_bool,
        [ctypes.c_void_p, ctypes.c_uint, ctypes.c_void_p, UnitNameApplier],
    ),
    'indexstore_error_get_description': (ctypes.c_char_p, [ctypes.c_void_p]),
    'indexstore_error_dispose': (None, [ctypes.c_void_p]),
    'indexstore_unit_reader_create': (
        ctypes.c_void_p,
        [ctypes.c_void_p, ctypes.c_char_p, ctypes.POINTER(ctypes.c_void_p)],
    ),
    'indexstore_unit_reader_dispose': (None, [ctypes.c_void_p]),
    'indexstore_unit_reader_get_main_file': (StringRef, [ctypes.c_void_p]),
    'indexstore_unit_reader_dependencies_apply_f': (
        ctypes.c_bool,
        [ctypes.c_void_p, ctypes.c_void_p, HandleApplier],
    ),
    'indexstore_unit_dependency_get_kind': (ctypes.c_int, [ctypes.c_void_p]),
    'indexstore_unit_dependency_get_name': (StringRef, [ctypes.c_void_p]),
    'indexstore_unit_dependency_get_filepath': (StringRef, [ctypes.c_void_p]),
    'indexstore_record_reader_create': (
        ctypes.c_void_p,
        [ctypes.c_void_p, ctypes.c_char_p, ctypes.POINTER(ctypes.c_void_p)],
    ),
    'indexstore_record_reader_dispose': (None, [ctypes.c_void_p]),
    'indexstore_record_reader_occurrences_apply_f': (
        ctypes.c_bool,
        [ctypes.c_void_p, ctypes.c_void_p, HandleApplier],
    ),
    'indexstore_occurrence_get_symbol': (ctypes.c_void_p, [ctypes.c_void_p]),
    'indexstore_occurrence_get_roles': (ctypes.c_uint64, [ctypes.c_void_p]),
    'indexstore_occurrence_get_line_col': (
        None,
        [
            ctypes.c_void_p,
            ctypes.POINTER(ctypes.c_uint),
            ctypes.POINTER(ctypes.c_uint),
        ],
    ),
    'indexstore_occurrence_relations_apply_f': (
        ctypes.c_bool,
        [ctypes.c_void_p, ctypes.c_void_p, HandleApplier],
    ),
    'indexstore_symbol_get_kind': (ctypes.c_int, [ctypes.c_void_p]),
    'indexstore_symbol_get_subkind': (ctypes.c_int, [ctypes.c_void_p]),
    'indexstore_symbol_get_name': (StringRef, [ctypes.c_void_p]),
    'indexstore_symbol_get_usr': (StringRef, [ctypes.c_void_p]),
    'indexstore_symbol_relation_get_roles': (ctypes.c_uint64, [ctypes.c_void_p]),
    'indexstore_symbol_relation_get_symbol': (ctypes.c_void_p, [ctypes.c_void_p]),
}


def toolchain_library_path(xcrun_path):
    try:
        completed = subprocess.run(
            [xcrun_path, '--find', 'clang'],
            capture_output=True,
            text=True,
            timeout=10,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as error:
        logging.getLogger(__name__).debug('xcrun --find clang failed: %s', error)
        return None
    clang_path = completed.stdout.strip()
    if completed.returncode != 0 or not clang_path:
        return None
    return os.path.join(
        os.path.dirname(os.path.dirname(clang_path)),
        'lib',
        'libIndexStore.dylib',
    )


def library_candidates(library_path=None, xcrun_path='/usr/bin/xcrun'):
    if library_path:
        return [library_path]
    candidates = []
    toolchain_path = toolchain_library_path(xcrun_path)
    if toolchain_path:
        candidates.append(toolchain_path)
    candidates.append(DEFAULT_LIBRARY_PATH)
    found_library = ctypes.util.find_library('IndexStore')
    if found_library:
        candidates.append(found_library)
    return candidates


def load_library(library_path=None, xcrun_path='/usr/bin/xcrun'):
    candidates = library_candidates(library_path, xcrun_path)
    for candidate in candidates:
        try:
            library = ctypes.CDLL(candidate)
        except OSError as error:
            logging.getLogger(__name__).debug('Cannot load %s: %s', candidate, error)
            continue
        logging.getLogger(__name__).debug('Loaded libIndexStore from %s', candidate)
        return declare_prototypes(library)
    raise IndexStoreError(
        'Could not load libIndexStore (tried %s).' % ', '.join(candidates),
        remediation=(
            'Install Xcode, or point LISTALL_MCP_LIBINDEXSTORE at '
            'libIndexStore.dylib.'
        ),
    )


def declare_prototypes(library):
    for function_name, (result_type, argument_types) in FUNCTION_PROTOTYPES.items():
        function = getattr(library, function_name)
        function.restype = result_type
        function.argtypes = argument_types
    return library


def raise_for_error(library, error, description):
    message = 'unknown error'
    if error.value:
        message = library.indexstore_error_get_description(error).decode(
            'utf-8',
            errors='replace',
        )
        library.indexstore_error_dispose(error)
    raise IndexStoreError('%s: %s' % (description, message))


class CallbackCollector:
    """Runs an apply function, keeping Python errors raised inside callbacks.

    ctypes prints and discards exceptions raised in a callback, so they are
    recorded here and raised again once the C iteration has returned.
    """

    def __init__(self, visit):
        self.visit = visit
        self.errors = []

    def __call__(self, context, value):
        try:
            self.visit(value)
        except Exception as error:
            self.errors.append(error)
            return False
        return True

    def raise_errors(self):
        if self.errors:
            raise self.errors[0]


class LibIndexStore(IndexStore):
    def __init__(self, path, library, handle):
        super().__init__(path)
        self.library = library
        self.handle = handle

    @classmethod
    def open(cls, path, configuration):
        library = load_library(
            configuration.libindexstore_path,
            configuration.xcrun_path,
        )
        error = ctypes.c_void_p()
        handle = library.indexstore_store_create(
            os.fsencode(path),
            ctypes.byref(error),
        )
        if not handle:
            raise_for_error(library, error, 'Could not open index store at %s' % path)
        return cls(path, library, handle)

    def close(self):
        if self.handle:
            self.library.indexstore_store_dispose(self.handle)
            self.handle = None

    def apply(self, apply_function, applier_type, visit, *arguments):
        collector = CallbackCollector(visit)
        callback = applier_type(collector)
        apply_function(*arguments, None, callback)
        collector.raise_errors()

    def unit_names(self):
        unit_names = []
        self.apply(
            self.library.indexstore_store_units_apply_f,
            UnitNameApplier,
            lambda unit_name: unit_names.append(unit_name.as_text()),
            self.handle,
            1,
        )
        return unit_names

    def units(self):
        units = []
        seen_records = set()
        for unit_name in self.unit_names():
            try:
                unit_records = self.records_of_unit(unit_name)
            except IndexStoreError as error:
                logging.getLogger(__name__).debug(
                    'Skipping unit %s: %s',
                    unit_name,
                    error,
                )
                continue
            for record_name, file_path in unit_records:
                if record_name in seen_records:
                    continue
                seen_records.add(record_name)
                units.append(IndexUnit(unit_name, record_name, file_path))
        return units

    def records_of_unit(self, unit_name):
        library = self.library
        error = ctypes.c_void_p()
        reader = library.indexstore_unit_reader_create(
            self.handle,
            unit_name.encode('utf-8'),
            ctypes.byref(error),
        )
        if not reader:
            raise_for_error(library, error, 'Could not read unit %s' % unit_name)
        try:
            main_file = library.indexstore_unit_reader_get_main_file(reader).as_text()
            records = []

            def visit_dependency(dependency):
                if library.indexstore_unit_dependency_get_kind(dependency) != (
                    UNIT_DEPENDENCY_RECORD
                ):
                    return
                records.append(
                    (
                        library.indexstore_unit_dependency_get_name(dependency).as_text(),
                        library.indexstore_unit_dependency_get_filepath(
                            dependency
                        ).as_text()
                        or main_file,
                    )
                )

            self.apply(
                library.indexstore_unit_reader_dependencies_apply_f,
                HandleApplier,
                visit_dependency,
                reader,
            )
            return records
        finally:
            library.indexstore_unit_reader_dispose(reader)

    def occurrences(self, unit):
        library = self.library
        error = ctypes.c_void_p()
        reader = library.indexstore_record_reader_create(
            self.handle,
            unit.record_name.encode('utf-8'),
            ctypes.byref(error),
        )
        if not reader:
            raise_for_error(
                library,
                error,
                'Could not read record %s' % unit.record_name,
            )
        try:
            occurrences = []
            self.apply(
                library.indexstore_record_reader_occurrences_apply_f,
                HandleApplier,
                lambda occurrence: occurrences.append(
                    self.occurrence_from_handle(occurrence, unit.file_path)
                ),
                reader,
            )
            return occurrences
        finally:
            library.indexstore_record_reader_dispose(reader)

    def symbol_from_handle(self, symbol):
        library = self.library
        return Symbol(
            library.indexstore_symbol_get_name(symbol).as_text(),
            library.indexstore_symbol_get_usr(symbol).as_text(),
            kind=SymbolKind(library.indexstore_symbol_get_kind(symbol)),
            subkind=SymbolSubkind(library.indexstore_symbol_get_subkind(symbol)),
        )

    def occurrence_from_handle(self, occurrence, file_path):
        library = self.library
        line = ctypes.c_uint()
        column = ctypes.c_uint()
        library.indexstore_occurrence_get_line_col(
            occurrence,
            ctypes.byref(line),
            ctypes.byref(column),
        )
        relations = []
        self.apply(
            library.indexstore_occurrence_relations_apply_f,
            HandleApplier,
            lambda relation: relations.append(
                SymbolRelation(
                    known_roles(library.indexstore_symbol_relation_get_roles(relation)),
                    self.symbol_from_handle(
                        library.indexstore_symbol_relation_get_symbol(relation)
                    ),
                )
            ),
            occurrence,
        )
        return SymbolOccurrence(
            self.symbol_from_handle(library.indexstore_occurrence_get_symbol(occurrence)),
            known_roles(library.indexstore_occurrence_get_roles(occurrence)),
            line.value,
            column.value,
            relations=relations,
            file_path=file_path,
        )


ALL_ROLES = sum(role.value for role in SymbolRole)


def known_roles(role_bits):
    return SymbolRole(role_bits & ALL_ROLES)
