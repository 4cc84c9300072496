import logging
import os
import plistlib
import shutil
import sys

from listall.devtools.automation.simulators import SimulatorDirectory
from listall.devtools.errors import DomainException
from listall.devtools.errors import IndexStoreNotFound
from listall.devtools.errors import SimulatorQueryFailed
from listall.devtools.indexstore.store import find_index_store_path


SCREEN_RECORDING_SCRIPT = (
    "ObjC.import('CoreGraphics'); $.CGPreflightScreenCaptureAccess()"
)
ACCESSIBILITY_SCRIPT = "ObjC.import('ApplicationServices'); $.AXIsProcessTrusted()"
WATCH_APP_NAMES = (
    'ListAllWatch Watch App.app',
    'ListAll Watch App.app',
    'ListAllWatch.app',
)
DEFAULT_WATCH_BUNDLE_ID = 'io.github.chmc.ListAll.watchkitapp'
PERMISSION_SETTINGS = (
    ('Screen Recording', SCREEN_RECORDING_SCRIPT),
    ('Accessibility', ACCESSIBILITY_SCRIPT),
)
WATCHOS_GUIDANCE = (
    'Single action: 8-15 seconds (normal for warm simulator)',
    'Batched (3 actions): 12-15 seconds total',
    'Screenshot: 1-2 seconds',
    'Query: 15-20 seconds (depends on UI complexity)',
    '',
    'Tips:',
    '- Use listall_batch for multi-action sequences (saves ~50% time)',
    '- Screenshots are fast - use them liberally for verification',
    '- Pre-boot simulator: listall_boot_simulator before interactions',
    '',
    'Known Limitations:',
    '- Digital Crown: NOT supported - use swipe gestures instead',
    '- Force Touch: NOT supported (deprecated by Apple)',
    '- Accessibility identifiers: May not propagate from SwiftUI to XCUITest',
)


class DiagnosticSection:
    def __init__(self, title):
        self.title = title
        self.lines = []
        self.issue_count = 0

    def status(self, text):
        self.lines.append('  %s' % text)

    def remedy(self, *instructions):
        for instruction in instructions:
            self.lines.append('    -> %s' % instruction)

    def issue(self, text, instruction, *more_instructions):
        self.status(text)
        self.remedy(instruction, *more_instructions)
        self.issue_count += 1

    def render(self):
        return '%s:\n%s\n\n' % (self.title, '\n'.join(self.lines))


class DiagnosticsReport:
    def __init__(self, sections):
        self.sections = list(sections)

    @property
    def issue_count(self):
        return sum(section.issue_count for section in self.sections)

    @property
    def is_ready(self):
        return self.issue_count == 0

    def render(self):
        text = '=== ListAll MCP Visual Verification Diagnostics ===\n\n'
        text += ''.join(section.render() for section in self.sections)
        text += 'OVERALL STATUS: '
        if self.is_ready:
            text += 'READY\n'
            text += '  All checks passed. The MCP server is ready for use.\n'
        else:
            text += 'ISSUES FOUND (%s item%s need attention)\n' % (
                self.issue_count,
                '' if self.issue_count == 1 else 's',
            )
            text += '  Review the issues above and follow the guidance to resolve them.\n'
        return text


def bundle_identifier_of(app_path):
    try:
        with open(os.path.join(app_path, 'Info.plist'), 'rb') as info_file:
            return plistlib.load(info_file).get('CFBundleIdentifier')
    except (OSError, plistlib.InvalidFileException, AttributeError):
        return None


class EnvironmentProbe:
    def __init__(
        self,
        configuration,
        runner,
        simulators=None,
        platform=None,
        which=shutil.which,
        xcode_select_path='/usr/bin/xcode-select',
    ):
        self.configuration = configuration
        self.runner = runner
        self.simulators = simulators or SimulatorDirectory(runner)
        self.platform = platform or sys.platform
        self.which = which
        self.xcode_select_path = xcode_select_path

    async def run(self):
        report = DiagnosticsReport(
            [
                await self.check_permissions(),
                await self.check_simulators(),
                self.check_build_artifacts(),
                self.check_index_store(),
                await self.check_xcode(),
                self.watchos_guidance(),
            ]
        )
        logging.getLogger(__name__).info(
            'Diagnostics completed: %s issues found',
            report.issue_count,
        )
        return report

    async def preflight(self, script):
        try:
            output = await self.runner.execute(
                self.configuration.osascript_path,
                ['-l', 'JavaScript', '-e', script],
                timeout=self.configuration.simctl_timeout,
            )
        except DomainException as error:
            logging.getLogger(__name__).debug('Permission preflight failed: %s', error)
            return False
        return output.succeeded and output.stdout.strip() == 'true'

    async def check_permissions(self):
        section = DiagnosticSection('PERMISSIONS')
        if self.platform != 'darwin':
            section.status('Skipped: permissions are only checked on macOS')
            return section
        for setting_name, script in PERMISSION_SETTINGS:
            if await self.preflight(script):
                section.status('%s: GRANTED' % setting_name)
            else:
                section.issue(
                    '%s: NOT GRANTED' % setting_name,
                    'Open System Settings > Privacy & Security > %s' % setting_name,
                    'Add Terminal (or the app running this MCP server)',
                    'Restart Terminal after granting permission',
                )
        return section

    async def check_simulators(self):
        section = DiagnosticSection('SIMULATORS')
        try:
            devices = await self.simulators.devices()
        except SimulatorQueryFailed:
            section.issue(
                'Status: ERROR - Could not list simulators',
                'Make sure Xcode Command Line Tools are installed',
                'Run: xcode-select --install',
            )
            return section
        except DomainException as error:
            section.issue(
                'Status: ERROR - %s' % error,
                'Make sure Xcode is installed and command line tools are set up',
            )
            return section

        available_devices = [device for device in devices if device.is_available]
        booted_names = [device.name for device in available_devices if device.is_booted]
        ios_count = len(
            [
                device
                for device in available_devices
                if device.device_type in ('iPhone', 'iPad')
            ]
        )
        watch_count = len(
            [
                device
                for device in available_devices
                if device.device_type == 'Apple Watch'
            ]
        )
        if booted_names:
            section.status('Booted: %s (%s)' % (len(booted_names), ', '.join(booted_names)))
        else:
            section.status('Booted: 0')
            section.remedy(
                'No simulators are currently booted',
                'Use listall_boot_simulator to boot a simulator',
            )
        section.status('Available: %s devices' % len(available_devices))
        section.status('iOS/iPadOS: %s devices' % ios_count)
        section.status('watchOS: %s devices' % watch_count)
        if watch_count:
            section.remedy('See WATCHOS PERFORMANCE GUIDANCE section below for tips')
        if not available_devices:
            section.issue_count += 1
            section.remedy(
                'No simulators available',
                'Open Xcode > Settings > Platforms to download simulator runtimes',
            )
        elif not ios_count:
            section.issue_count += 1
            section.remedy(
                'No iOS/iPadOS simulators available',
                'Open Xcode > Settings > Platforms to download iOS simulators',
            )
        return section

    def find_product(self, sdk_pattern, product_names):
        for product_directory in self.configuration.product_directories(sdk_pattern):
            for product_name in product_names:
                product_path = os.path.join(product_directory, product_name)
                if os.path.exists(product_path):
                    return product_path
        return None

    def check_build_artifacts(self):
        section = DiagnosticSection('BUILD ARTIFACTS')
        ios_app_path = self.find_product('iphonesimulator', ['ListAll.app'])
        if ios_app_path:
            section.status('ListAll iOS: FOUND at %s' % ios_app_path)
        else:
            section.status('ListAll iOS: NOT BUILT')
            section.remedy(
                'Build iOS target in Xcode: xcodebuild -scheme ListAll -sdk iphonesimulator'
            )

        watch_app_path = self.find_product('watchsimulator', WATCH_APP_NAMES)
        if watch_app_path:
            section.status(
                'ListAll watchOS: FOUND (bundle: %s)'
                % (bundle_identifier_of(watch_app_path) or DEFAULT_WATCH_BUNDLE_ID)
            )
            section.remedy('Path: %s' % watch_app_path)
        else:
            section.status('ListAll watchOS: NOT BUILT')
            section.remedy(
                "Build watch target: xcodebuild -scheme 'ListAllWatch Watch App' "
                '-sdk watchsimulator'
            )

        ios_runner_path = self.find_product(
            'iphonesimulator',
            ['ListAllUITests-Runner.app'],
        )
        if ios_runner_path:
            section.status('XCUITest Runner (iOS): FOUND at %s' % ios_runner_path)
        else:
            section.issue(
                'XCUITest Runner (iOS): NOT BUILT',
                'Build for testing: xcodebuild build-for-testing -scheme ListAll '
                '-sdk iphonesimulator',
            )

        watch_runner_path = self.find_product(
            'watchsimulator',
            ['ListAllWatch Watch AppUITests-Runner.app'],
        )
        if watch_runner_path:
            section.status('XCUITest Runner (watchOS): FOUND at %s' % watch_runner_path)
        else:
            section.status('XCUITest Runner (watchOS): NOT BUILT')
            section.remedy(
                "Build for testing: xcodebuild build-for-testing -scheme "
                "'ListAllWatch Watch App' -sdk watchsimulator"
            )
        return section

    def check_index_store(self):
        section = DiagnosticSection('INDEX STORE')
        try:
            index_store_path = find_index_store_path(self.configuration)
        except IndexStoreNotFound:
            section.status('Index Store: NOT FOUND')
            section.remedy(
                'Build the ListAll project in Xcode to populate the index '
                '(needed by listall_call_graph)',
                'Expected location: %s'
                % self.configuration.expected_index_store_location(),
            )
            return section
        section.status('Index Store: FOUND at %s' % index_store_path)
        return section

    async def check_xcode(self):
        section = DiagnosticSection('XCODE')
        try:
            version_output = await self.runner.execute(
                self.configuration.xcodebuild_path,
                ['-version'],
                timeout=self.configuration.simctl_timeout,
            )
        except DomainException:
            section.issue('Version: NOT FOUND', 'Install Xcode from the App Store')
        else:
            if version_output.succeeded:
                version_line = (version_output.stdout.splitlines() or [''])[0]
                section.status('Version: %s' % version_line.replace('Xcode ', ''))
            else:
                section.issue(
                    'Version: ERROR - xcodebuild failed',
                    'Make sure Xcode is installed from the App Store',
                )

        xcodebuild_path = self.which('xcodebuild')
        if xcodebuild_path:
            section.status('xcodebuild: %s' % xcodebuild_path)
        else:
            section.issue('xcodebuild: NOT FOUND', 'Run: xcode-select --install')

        xcrun_path = self.which('xcrun')
        if xcrun_path:
            section.status('xcrun: %s' % xcrun_path)
            try:
                simctl_output = await self.runner.simctl(['help'])
                simctl_works = simctl_output.succeeded
            except DomainException:
                simctl_works = False
            if simctl_works:
                section.status('simctl: Available (via xcrun simctl)')
            else:
                section.issue(
                    'simctl: ERROR - simctl not working',
                    'Run: sudo xcode-select -s /Applications/Xcode.app',
                )
        else:
            section.issue('xcrun: NOT FOUND', 'Run: xcode-select --install')

        try:
            select_output = await self.runner.execute(
                self.xcode_select_path,
                ['-p'],
                timeout=self.configuration.simctl_timeout,
            )
        except DomainException as error:
            logging.getLogger(__name__).debug('xcode-select -p failed: %s', error)
        else:
            if select_output.succeeded:
                section.status('Developer Path: %s' % select_output.stdout.strip())
        return section

    def watchos_guidance(self):
        section = DiagnosticSection('WATCHOS PERFORMANCE GUIDANCE')
        guidance_lines = list(WATCHOS_GUIDANCE)
        guidance_lines.insert(
            guidance_lines.index('Known Limitations:') - 1,
            '- Maximum batch size for watchOS: %s actions'
            % self.configuration.watch_max_batch_size,
        )
        for line in guidance_lines:
            section.lines.append(('  %s' % line).rstrip())
        return section
