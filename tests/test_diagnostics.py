import asyncio
import os
import shutil
import tempfile

from reahl.tofu import Fixture
from reahl.tofu import expected
from reahl.tofu import tear_down
from reahl.tofu import with_fixtures

from listall.devtools.automation.process import ProcessOutput
from listall.devtools.automation.simulators import SimulatorDevice
from listall.devtools.configuration import DevToolsConfiguration
from listall.devtools.diagnostics import DiagnosticSection
from listall.devtools.diagnostics import EnvironmentProbe
from listall.devtools.errors import LaunchFailure
from listall.devtools.errors import SimulatorQueryFailed


class FakeToolRunner:
    def __init__(self):
        self.responses = {
            '/usr/bin/osascript': ProcessOutput('osascript', 0, 'true\n', ''),
            '/usr/bin/xcodebuild': ProcessOutput(
                'xcodebuild -version',
                0,
                'Xcode 15.2\nBuild version 15C500b\n',
                '',
            ),
            '/usr/bin/xcode-select': ProcessOutput(
                'xcode-select -p',
                0,
                '/Applications/Xcode.app/Contents/Developer\n',
                '',
            ),
            'simctl': ProcessOutput('xcrun simctl help', 0, 'usage: simctl\n', ''),
        }

    def answer(self, command):
        response = self.responses[command]
        if isinstance(response, Exception):
            raise response
        return response

    async def execute(self, command, arguments=(), environment=None, timeout=None):
        return self.answer(command)

    async def simctl(self, arguments, timeout=None):
        return self.answer('simctl')


class FakeDeviceList:
    def __init__(self, devices):
        self.device_list = devices

    async def devices(self):
        if isinstance(self.device_list, Exception):
            raise self.device_list
        return self.device_list


class DiagnosticsFixture(Fixture):
    platform = 'darwin'

    def new_derived_data(self):
        return tempfile.mkdtemp(prefix='listall-derived-data-')

    @tear_down
    def remove_derived_data(self):
        shutil.rmtree(self.derived_data)

    def new_project_directory(self):
        project_directory = os.path.join(self.derived_data, 'ListAll-abcdefghijkl')
        os.makedirs(project_directory)
        return project_directory

    def build(self, *relative_path):
        os.makedirs(os.path.join(self.project_directory, *relative_path))

    def build_everything(self):
        products = ('Build', 'Products', 'Debug-iphonesimulator')
        self.build(*products, 'ListAll.app')
        self.build(*products, 'ListAllUITests-Runner.app')
        self.build('Index.noindex', 'DataStore', 'v5')

    def new_configuration(self):
        return DevToolsConfiguration(derived_data_path=self.derived_data)

    def new_runner(self):
        return FakeToolRunner()

    def new_devices(self):
        return [
            SimulatorDevice(
                'iPhone 15',
                '5A0C2B1E-7D8F-4E3A-9B6C-1D2E3F4A5B6C',
                'Booted',
                'com.apple.CoreSimulator.SimRuntime.iOS-17-2',
                device_type_identifier='com.apple.CoreSimulator.SimDeviceType.iPhone-15',
            ),
            SimulatorDevice(
                'Apple Watch Series 9 (45mm)',
                '9F8E7D6C-5B4A-4392-8170-6F5E4D3C2B1A',
                'Shutdown',
                'com.apple.CoreSimulator.SimRuntime.watchOS-10-2',
                device_type_identifier='com.apple.CoreSimulator.SimDeviceType.Apple-Watch-Series-9-45mm',
            ),
        ]

    def new_probe(self):
        return EnvironmentProbe(
            self.configuration,
            self.runner,
            simulators=FakeDeviceList(self.devices),
            platform=self.platform,
            which=lambda tool_name: '/usr/bin/%s' % tool_name,
        )

    def run_probe(self):
        return asyncio.run(self.probe.run())


class LinuxDiagnosticsFixture(DiagnosticsFixture):
    platform = 'linux'


@with_fixtures(DiagnosticsFixture)
def test_fully_prepared_environment_is_ready(fixture):
    fixture.build_everything()

    report = fixture.run_probe()
    report_text = report.render()

    assert report.is_ready
    assert report_text.startswith('=== ListAll MCP Visual Verification Diagnostics ===\n\n')
    assert (
        'PERMISSIONS:\n'
        '  Screen Recording: GRANTED\n'
        '  Accessibility: GRANTED\n'
        '\n'
    ) in report_text
    assert '  Booted: 1 (iPhone 15)\n' in report_text
    assert '  watchOS: 1 devices\n' in report_text
    assert '  Version: 15.2\n' in report_text
    assert '  simctl: Available (via xcrun simctl)\n' in report_text
    assert '  Developer Path: /Applications/Xcode.app/Contents/Developer\n' in report_text
    assert '  Index Store: FOUND at ' in report_text
    assert report_text.endswith(
        'OVERALL STATUS: READY\n'
        '  All checks passed. The MCP server is ready for use.\n'
    )


@with_fixtures(DiagnosticsFixture)
def test_missing_permissions_and_runner_are_counted_as_issues(fixture):
    fixture.runner.responses['/usr/bin/osascript'] = ProcessOutput(
        'osascript',
        0,
        'false\n',
        '',
    )

    report = fixture.run_probe()
    report_text = report.render()

    assert report.issue_count == 3
    assert '  Screen Recording: NOT GRANTED\n' in report_text
    assert '    -> Open System Settings > Privacy & Security > Accessibility\n' in report_text
    assert '  XCUITest Runner (iOS): NOT BUILT\n' in report_text
    assert '  Index Store: NOT FOUND\n' in report_text
    assert 'OVERALL STATUS: ISSUES FOUND (3 items need attention)\n' in report_text


@with_fixtures(LinuxDiagnosticsFixture)
def test_permissions_are_not_probed_off_macos(fixture):
    fixture.build_everything()
    fixture.runner.responses['/usr/bin/osascript'] = LaunchFailure('osascript', 'missing')

    report = fixture.run_probe()

    assert report.is_ready
    assert (
        'PERMISSIONS:\n'
        '  Skipped: permissions are only checked on macOS\n'
    ) in report.render()


@with_fixtures(DiagnosticsFixture)
def test_simulator_listing_failure_is_an_issue(fixture):
    fixture.build_everything()
    fixture.devices = SimulatorQueryFailed('simctl not found')

    report = fixture.run_probe()

    assert report.issue_count == 1
    assert '  Status: ERROR - Could not list simulators\n' in report.render()


@with_fixtures(DiagnosticsFixture)
def test_no_ios_simulators_is_an_issue(fixture):
    fixture.build_everything()
    fixture.devices = fixture.devices[1:]

    report = fixture.run_probe()
    report_text = report.render()

    assert report.issue_count == 1
    assert '  Booted: 0\n' in report_text
    assert '    -> No iOS/iPadOS simulators available\n' in report_text
    assert 'OVERALL STATUS: ISSUES FOUND (1 item need attention)\n' in report_text


@with_fixtures(DiagnosticsFixture)
def test_missing_xcode_tools_are_reported(fixture):
    fixture.build_everything()
    fixture.runner.responses['/usr/bin/xcodebuild'] = LaunchFailure('xcodebuild', 'missing')
    fixture.runner.responses['simctl'] = ProcessOutput('xcrun simctl help', 72, '', 'error')

    report_text = fixture.run_probe().render()

    assert '  Version: NOT FOUND\n    -> Install Xcode from the App Store\n' in report_text
    assert (
        '  simctl: ERROR - simctl not working\n'
        '    -> Run: sudo xcode-select -s /Applications/Xcode.app\n'
    ) in report_text


@with_fixtures(DiagnosticsFixture)
def test_watchos_guidance_states_the_batch_limit(fixture):
    fixture.configuration.watch_max_batch_size = 4

    report_text = fixture.run_probe().render()

    assert (
        '  - Pre-boot simulator: listall_boot_simulator before interactions\n'
        '  - Maximum batch size for watchOS: 4 actions\n'
        '\n'
        '  Known Limitations:\n'
    ) in report_text


def test_an_issue_cannot_be_recorded_without_a_remediation():
    section = DiagnosticSection('XCODE')

    with expected(TypeError):
        section.issue('simctl: ERROR - simctl not working')
    assert section.issue_count == 0
