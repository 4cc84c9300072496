from unittest.mock import patch

from reahl.tofu import Fixture
from reahl.tofu import expected
from reahl.tofu import with_fixtures

from listall.devtools.mcp.main import run_application


class ApplicationFixture(Fixture):
    def new_environ(self):
        return {}

    def run(self, *arguments):
        with patch('listall.devtools.mcp.main.configure_logging') as configure_logging:
            with patch('listall.devtools.mcp.main.create_server') as create_server:
                run_application(list(arguments), environ=self.environ)
        self.configure_logging = configure_logging
        self.create_server = create_server
        return create_server.call_args.kwargs['configuration']


@with_fixtures(ApplicationFixture)
def test_server_runs_on_stdio_with_default_configuration(fixture):
    configuration = fixture.run()

    assert configuration.derived_data_path == '~/Library/Developer/Xcode/DerivedData'
    assert configuration.driver_command is None
    fixture.create_server.return_value.run.assert_called_once_with(transport='stdio')
    fixture.configure_logging.assert_called_once_with('WARNING')


@with_fixtures(ApplicationFixture)
def test_command_line_options_override_the_environment(fixture):
    fixture.environ = {
        'LISTALL_MCP_DERIVED_DATA': '/env/DerivedData',
        'LISTALL_MCP_INDEX_STORE': '/env/index.json',
        'LISTALL_MCP_SIMCTL_TIMEOUT': '45',
    }

    configuration = fixture.run(
        '--derived-data',
        '/cli/DerivedData',
        '--project',
        'ListAll/ListAll.xcodeproj',
        '--driver-command',
        'listall-mcp-driver --backend listall_backend:create',
        '--log-level',
        'debug',
    )

    assert configuration.derived_data_path == '/cli/DerivedData'
    assert configuration.index_store_path == '/env/index.json'
    assert configuration.simctl_timeout == 45.0
    assert configuration.driver_command == [
        'listall-mcp-driver',
        '--backend',
        'listall_backend:create',
    ]
    fixture.configure_logging.assert_called_once_with('DEBUG')


@with_fixtures(ApplicationFixture)
def test_log_level_can_come_from_the_environment(fixture):
    fixture.environ = {'LISTALL_MCP_LOG_LEVEL': 'info'}

    fixture.run()

    fixture.configure_logging.assert_called_once_with('INFO')


@with_fixtures(ApplicationFixture)
def test_unknown_log_level_in_the_environment_is_refused(fixture):
    fixture.environ = {'LISTALL_MCP_LOG_LEVEL': 'chatty'}

    with expected(SystemExit):
        fixture.run()


@with_fixtures(ApplicationFixture)
def test_timeout_that_is_not_a_number_is_refused(fixture):
    fixture.environ = {'LISTALL_MCP_DEFAULT_TIMEOUT': 'soon'}

    with expected(SystemExit):
        fixture.run()
