import asyncio
import json
import os
import shutil
import tempfile

from reahl.tofu import Fixture
from reahl.tofu import expected
from reahl.tofu import tear_down
from reahl.tofu import with_fixtures

from listall.devtools.automation.bridge import CommandBridge
from listall.devtools.automation.bridge import CommandLineDriver
from listall.devtools.automation.bridge import XcodeTestDriver
from listall.devtools.automation.bridge import driver_for_configuration
from listall.devtools.automation.commands import ActionResult
from listall.devtools.automation.commands import BatchResult
from listall.devtools.automation.commands import ClickAction
from listall.devtools.automation.commands import SingleActionRequest
from listall.devtools.automation.commands import TypeAction
from listall.devtools.automation.commands import batch_request_from_arguments
from listall.devtools.automation.commands import write_json_atomically
from listall.devtools.automation.process import ProcessOutput
from listall.devtools.automation.process import ProcessRunner
from listall.devtools.automation.simulators import SimulatorPlatform
from listall.devtools.automation.simulators import SimulatorTarget
from listall.devtools.configuration import DevToolsConfiguration
from listall.devtools.errors import InvalidParameters
from listall.devtools.errors import ResultFileMalformed
from listall.devtools.errors import ResultFileMissing
from listall.devtools.errors import WatchBatchTooLarge


BOOTED_UDID = '6F1C2B0A-8D7E-4C43-9A55-0D1E2F3A4B5C'


class FakeSimulators:
    def __init__(self, platform):
        self.platform = platform

    async def target_for(self, udid):
        return SimulatorTarget(BOOTED_UDID if udid == 'booted' else udid, self.platform)


class ScriptedDriver:
    def __init__(self, result_document=None, exit_code=0, delay=0):
        self.result_document = result_document
        self.exit_code = exit_code
        self.delay = delay
        self.commands = []
        self.timeouts = []
        self.paths = []
        self.running_count = 0
        self.most_running = 0

    async def run(self, target, timeout, command_path, result_path):
        self.running_count += 1
        self.most_running = max(self.most_running, self.running_count)
        try:
            with open(command_path, encoding='utf-8') as command_file:
                self.commands.append(json.load(command_file))
            self.timeouts.append(timeout)
            self.paths.append((command_path, result_path))
            await asyncio.sleep(self.delay)
            if self.result_document is not None:
                write_json_atomically(result_path, self.result_document)
            return ProcessOutput('driver', self.exit_code, '', '')
        finally:
            self.running_count -= 1


class UnparseableResultDriver(ScriptedDriver):
    async def run(self, target, timeout, command_path, result_path):
        output = await super().run(target, timeout, command_path, result_path)
        with open(result_path, 'w', encoding='utf-8') as result_file:
            result_file.write('{"success": tru')
        return output


class BridgeFixture(Fixture):
    platform = SimulatorPlatform.IOS

    def new_directory(self):
        return tempfile.mkdtemp(prefix='listall-bridge-')

    @tear_down
    def remove_directory(self):
        shutil.rmtree(self.directory)

    def new_configuration(self):
        return DevToolsConfiguration(
            command_path=os.path.join(self.directory, 'command.json'),
            result_path=os.path.join(self.directory, 'result.json'),
            watch_command_path=os.path.join(self.directory, 'watch_command.json'),
            watch_result_path=os.path.join(self.directory, 'watch_result.json'),
        )

    def new_driver(self):
        return ScriptedDriver(
            result_document={
                'success': True,
                'message': "Successfully clicked 'AddButton'",
                'usedCoordinateFallback': False,
            }
        )

    def new_bridge(self):
        return CommandBridge(
            self.configuration,
            ProcessRunner(),
            FakeSimulators(self.platform),
            driver=self.driver,
        )

    def dispatch(self, request, udid='booted'):
        return asyncio.run(self.bridge.dispatch(request, udid=udid))

    def click_request(self):
        return SingleActionRequest('com.example.app', ClickAction(identifier='AddButton'))


class WatchBridgeFixture(BridgeFixture):
    platform = SimulatorPlatform.WATCHOS


@with_fixtures(BridgeFixture)
def test_single_action_round_trips_through_the_command_files(fixture):
    result = fixture.dispatch(fixture.click_request())

    assert isinstance(result, ActionResult)
    assert result.success
    assert result.message == "Successfully clicked 'AddButton'"
    assert fixture.driver.commands == [
        {'bundleId': 'com.example.app', 'action': 'click', 'identifier': 'AddButton'}
    ]
    assert fixture.driver.timeouts == [60.0]
    assert os.listdir(fixture.directory) == []


@with_fixtures(BridgeFixture)
def test_missing_result_file_reports_the_driver_exit_code(fixture):
    fixture.driver.result_document = None
    fixture.driver.exit_code = 65

    def check_error(error):
        assert error.exit_code == 65
        assert error.result_path == fixture.configuration.result_path

    with expected(ResultFileMissing, test=check_error):
        fixture.dispatch(fixture.click_request())
    assert os.listdir(fixture.directory) == []


@with_fixtures(BridgeFixture)
def test_result_left_over_from_an_earlier_run_is_never_read(fixture):
    write_json_atomically(
        fixture.configuration.result_path,
        {'success': True, 'message': 'stale'},
    )
    fixture.driver.result_document = None

    with expected(ResultFileMissing):
        fixture.dispatch(fixture.click_request())


@with_fixtures(BridgeFixture)
def test_result_without_a_message_is_reported_as_malformed(fixture):
    fixture.driver.result_document = {'success': True}

    def check_error(error):
        assert not isinstance(error, InvalidParameters)
        assert str(error) == (
            "The UI test driver wrote an unusable result: "
            "malformed result document ('message')"
        )
        assert 'build-for-testing' in error.remediation

    with expected(ResultFileMalformed, test=check_error):
        fixture.dispatch(fixture.click_request())
    assert os.listdir(fixture.directory) == []


@with_fixtures(BridgeFixture)
def test_result_file_that_is_not_json_is_reported_as_malformed(fixture):
    fixture.driver = UnparseableResultDriver()

    def check_error(error):
        assert str(error).startswith(
            'The UI test driver wrote an unusable result: could not parse %s ('
            % fixture.configuration.result_path
        )

    with expected(ResultFileMalformed, test=check_error):
        fixture.dispatch(fixture.click_request())
    assert os.listdir(fixture.directory) == []


@with_fixtures(BridgeFixture)
def test_batch_results_are_parsed_per_action(fixture):
    fixture.driver.result_document = {
        'success': True,
        'message': 'Executed 2 actions: 2 succeeded, 0 failed',
        'results': [
            {'success': True, 'message': "Successfully clicked 'Add'"},
            {'success': True, 'message': "Successfully swiped up on 'ListsView'"},
        ],
    }
    request = batch_request_from_arguments(
        'com.example.app',
        [
            {'action': 'click', 'label': 'Add'},
            {'action': 'swipe', 'identifier': 'ListsView', 'direction': 'up'},
        ],
    )

    result = fixture.dispatch(request)

    assert isinstance(result, BatchResult)
    assert [action_result.success for action_result in result.results] == [True, True]
    assert fixture.driver.commands[0]['commands'][1] == {
        'action': 'swipe',
        'identifier': 'ListsView',
        'direction': 'up',
    }
    assert fixture.driver.timeouts == [120.0]


@with_fixtures(BridgeFixture)
def test_concurrent_dispatches_are_serialised(fixture):
    fixture.driver.delay = 0.05

    async def dispatch_twice():
        return await asyncio.gather(
            fixture.bridge.dispatch(fixture.click_request()),
            fixture.bridge.dispatch(fixture.click_request()),
        )

    results = asyncio.run(dispatch_twice())

    assert [result.success for result in results] == [True, True]
    assert fixture.driver.most_running == 1


@with_fixtures(WatchBridgeFixture)
def test_watch_commands_use_their_own_files_and_longer_timeouts(fixture):
    fixture.dispatch(fixture.click_request())

    assert fixture.driver.paths == [
        (
            fixture.configuration.watch_command_path,
            fixture.configuration.watch_result_path,
        )
    ]
    assert fixture.driver.timeouts == [90.0]


@with_fixtures(WatchBridgeFixture)
def test_watch_batches_larger_than_five_actions_are_refused(fixture):
    request = batch_request_from_arguments(
        'com.example.app',
        [{'action': 'swipe', 'identifier': 'ListsView', 'direction': 'up'}] * 6,
    )

    with expected(WatchBatchTooLarge):
        fixture.dispatch(request)
    assert fixture.driver.commands == []


@with_fixtures(BridgeFixture)
def test_swipe_or_type_without_a_target_is_refused_before_the_driver_runs(fixture):
    targetless_swipe = batch_request_from_arguments(
        'com.example.app',
        [
            {'action': 'click', 'label': 'Add'},
            {'action': 'swipe', 'direction': 'up'},
        ],
    )
    targetless_type = SingleActionRequest(
        'com.example.app',
        TypeAction(text='Groceries'),
    )

    def check_swipe_message(error):
        assert str(error) == (
            "Action at index 1: swipe action requires either 'identifier' or 'label'."
        )

    with expected(InvalidParameters, test=check_swipe_message):
        fixture.dispatch(targetless_swipe)
    with expected(InvalidParameters):
        fixture.dispatch(targetless_type)
    assert fixture.driver.commands == []
    assert os.listdir(fixture.directory) == []


@with_fixtures(BridgeFixture)
def test_command_line_driver_receives_the_file_paths_in_its_environment(fixture):
    fixture.driver = CommandLineDriver(
        ProcessRunner(),
        [
            '/bin/sh',
            '-c',
            'test -f "$LISTALL_MCP_COMMAND_PATH" && printf '
            '\'{"success": true, "message": "ran on %s"}\' '
            '"$LISTALL_MCP_SIMULATOR_UDID" > "$LISTALL_MCP_RESULT_PATH"',
        ],
    )

    result = fixture.dispatch(fixture.click_request())

    assert result.success
    assert result.message == 'ran on %s' % BOOTED_UDID


def test_configured_driver_command_replaces_xcodebuild():
    runner = ProcessRunner()

    assert isinstance(
        driver_for_configuration(DevToolsConfiguration(), runner),
        XcodeTestDriver,
    )
    assert isinstance(
        driver_for_configuration(
            DevToolsConfiguration(driver_command=['listall-mcp-driver']),
            runner,
        ),
        CommandLineDriver,
    )
