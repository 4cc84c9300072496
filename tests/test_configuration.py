import os
import shutil
import tempfile

from reahl.tofu import Fixture
from reahl.tofu import expected
from reahl.tofu import tear_down
from reahl.tofu import with_fixtures

from listall.devtools.configuration import DevToolsConfiguration


def test_environment_settings_are_read_and_overrides_win():
    configuration = DevToolsConfiguration.from_environment(
        {
            'LISTALL_MCP_PROJECT_NAME': 'ListAllBeta',
            'LISTALL_MCP_XCRUN': '/opt/xcode/xcrun',
            'LISTALL_MCP_GRACE_PERIOD': '0.5',
            'LISTALL_MCP_DRIVER_COMMAND': "listall-mcp-driver --backend 'my backend:create'",
            'LISTALL_MCP_INDEX_STORE': '   ',
        },
        xcrun_path='/usr/local/bin/xcrun',
        index_store_path=None,
    )

    assert configuration.project_name == 'ListAllBeta'
    assert configuration.xcrun_path == '/usr/local/bin/xcrun'
    assert configuration.termination_grace_period == 0.5
    assert configuration.driver_command == [
        'listall-mcp-driver',
        '--backend',
        'my backend:create',
    ]
    assert configuration.index_store_path is None


def test_numeric_environment_setting_must_be_a_number():
    def check_message(error):
        assert str(error) == 'LISTALL_MCP_SIMCTL_TIMEOUT must be a number of seconds.'

    with expected(ValueError, test=check_message):
        DevToolsConfiguration.from_environment({'LISTALL_MCP_SIMCTL_TIMEOUT': 'fast'})


def test_timeouts_scale_for_watch_and_batches():
    configuration = DevToolsConfiguration(action_timeouts={'click': 30.0})

    assert configuration.action_timeout('click') == 30.0
    assert configuration.action_timeout('type', is_watch=True) == 112.5
    assert configuration.action_timeout('pinch') == 90.0
    assert configuration.batch_timeout(3) == 150.0
    assert configuration.batch_timeout(2, is_watch=True) == 180.0
    assert configuration.build_timeout(60.0) == 300.0
    assert configuration.build_timeout(200.0) == 400.0


def test_watch_commands_use_separate_files():
    configuration = DevToolsConfiguration()

    assert configuration.command_file_paths() == (
        '/tmp/listall_mcp_command.json',
        '/tmp/listall_mcp_result.json',
    )
    assert configuration.command_file_paths(is_watch=True) == (
        '/tmp/listall_mcp_watch_command.json',
        '/tmp/listall_mcp_watch_result.json',
    )


class DerivedDataFixture(Fixture):
    def new_directory(self):
        return tempfile.mkdtemp(prefix='listall-derived-')

    @tear_down
    def remove_directory(self):
        shutil.rmtree(self.directory)

    def new_configuration(self):
        return DevToolsConfiguration(derived_data_path=self.directory)

    def make_directory(self, *relative_path):
        path = os.path.join(self.directory, *relative_path)
        os.makedirs(path)
        return path


@with_fixtures(DerivedDataFixture)
def test_product_directories_match_the_sdk_of_this_project_only(fixture):
    phone_products = fixture.make_directory(
        'ListAll-abc', 'Build', 'Products', 'Debug-iphonesimulator'
    )
    fixture.make_directory('ListAll-abc', 'Build', 'Products', 'Debug-watchsimulator')
    fixture.make_directory('Other-def', 'Build', 'Products', 'Debug-iphonesimulator')

    assert fixture.configuration.product_directories('iphonesimulator') == [phone_products]
