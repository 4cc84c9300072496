import enum
import json
import logging
import os
import re

from listall.devtools.errors import DomainException
from listall.devtools.errors import LaunchFailure
from listall.devtools.errors import SimulatorQueryFailed
from listall.devtools.validation import device_type_from_identifier


class SimulatorPlatform(enum.Enum):
    IOS = 'iOS'
    WATCHOS = 'watchOS'
    UNKNOWN = 'unknown'

    @property
    def is_watch(self):
        return self is SimulatorPlatform.WATCHOS

    @property
    def destination(self):
        if self.is_watch:
            return 'watchOS Simulator'
        return 'iOS Simulator'

    @property
    def sdk_pattern(self):
        if self.is_watch:
            return 'watchsimulator'
        return 'iphonesimulator'

    @property
    def scheme_name(self):
        if self.is_watch:
            return 'ListAllWatch Watch App'
        return 'ListAll'

    @property
    def test_identifier(self):
        if self.is_watch:
            return 'ListAllWatch Watch AppUITests/MCPCommandRunner/testRunMCPCommand'
        return 'ListAllUITests/MCPCommandRunner/testRunMCPCommand'

    @classmethod
    def for_device_type(cls, device_type):
        if device_type == 'Apple Watch':
            return cls.WATCHOS
        if device_type in ('iPhone', 'iPad'):
            return cls.IOS
        return cls.UNKNOWN


class SimulatorDevice:
    def __init__(
        self,
        name,
        udid,
        state,
        runtime,
        device_type_identifier=None,
        is_available=True,
    ):
        self.name = name
        self.udid = udid
        self.state = state
        self.runtime = runtime
        self.device_type_identifier = device_type_identifier
        self.is_available = is_available

    @property
    def device_type(self):
        return device_type_from_identifier(self.device_type_identifier)

    @property
    def is_booted(self):
        return self.state == 'Booted'

    @property
    def runtime_name(self):
        return self.runtime.replace(
            'com.apple.CoreSimulator.SimRuntime.',
            '',
        ).replace('-', '.')

    @property
    def os_version(self):
        match = re.search(r'(?:iOS|watchOS)-(\d+)-(\d+)', self.runtime)
        if match is None:
            return None
        return '%s.%s' % match.groups()

    def summary(self):
        return {
            'name': self.name,
            'udid': self.udid,
            'state': self.state,
            'device_type': self.device_type,
            'runtime': self.runtime_name,
            'is_available': self.is_available,
        }


class SimulatorTarget:
    def __init__(self, udid, platform):
        self.udid = udid
        self.platform = platform


def devices_from_simctl_json(simctl_output):
    try:
        parsed_output = json.loads(simctl_output)
        devices_by_runtime = parsed_output['devices']
        return [
            SimulatorDevice(
                device_entry['name'],
                device_entry['udid'],
                device_entry.get('state', 'Unknown'),
                runtime,
                device_type_identifier=device_entry.get('deviceTypeIdentifier'),
                is_available=device_entry.get('isAvailable', True),
            )
            for runtime, device_entries in devices_by_runtime.items()
            for device_entry in device_entries
        ]
    except (ValueError, KeyError, TypeError, AttributeError) as error:
        raise SimulatorQueryFailed(
            'Could not parse simulator device data (%s)' % error
        ) from error


class SimulatorDirectory:
    def __init__(self, runner):
        self.runner = runner

    async def devices(self):
        output = await self.runner.simctl(['list', 'devices', '-j'])
        if not output.succeeded:
            raise SimulatorQueryFailed(output.stderr.strip())
        return devices_from_simctl_json(output.stdout)

    async def available_devices(self, device_type='all', state='all'):
        devices = [
            device
            for device in await self.devices()
            if device.is_available
            and (device_type == 'all' or device.device_type == device_type)
            and (state == 'all' or device.state == state)
        ]
        return sorted(devices, key=lambda device: (device.device_type, device.name))

    async def resolve_udid(self, udid):
        if udid != 'booted':
            return udid
        for device in await self.devices():
            if device.is_booted:
                return device.udid
        raise SimulatorQueryFailed('No booted simulator found')

    async def device_with_udid(self, udid):
        for device in await self.devices():
            if device.udid == udid:
                return device
        return None

    async def target_for(self, udid):
        resolved_udid = await self.resolve_udid(udid)
        try:
            device = await self.device_with_udid(resolved_udid)
        except (SimulatorQueryFailed, LaunchFailure) as error:
            logging.getLogger(__name__).warning(
                'Failed to detect platform of %s: %s',
                resolved_udid,
                error,
            )
            device = None
        platform = (
            SimulatorPlatform.for_device_type(device.device_type)
            if device
            else SimulatorPlatform.UNKNOWN
        )
        logging.getLogger(__name__).debug(
            'Simulator %s resolved to %s on %s',
            udid,
            resolved_udid,
            platform.value,
        )
        return SimulatorTarget(resolved_udid, platform)

    async def boot(self, udid):
        output = await self.runner.simctl(['boot', udid])
        if output.succeeded:
            return (
                'Simulator %s booted successfully. '
                'It may take a few seconds to fully start.' % udid
            )
        if 'Unable to boot device in current state: Booted' in output.stderr:
            return 'Simulator %s is already booted.' % udid
        raise DomainException('Failed to boot simulator: %s' % output.stderr.strip())

    async def shutdown(self, udid):
        output = await self.runner.simctl(['shutdown', udid])
        if output.succeeded:
            if udid == 'all':
                return 'All simulators have been shut down.'
            return 'Simulator %s shut down successfully.' % udid
        if 'Unable to shutdown device in current state: Shutdown' in output.stderr:
            return 'Simulator %s is already shut down.' % udid
        raise DomainException(
            'Failed to shutdown simulator: %s' % output.stderr.strip()
        )

    async def screenshot(self, udid, screenshot_path):
        os.makedirs(os.path.dirname(screenshot_path), exist_ok=True)
        output = await self.runner.simctl(['io', udid, 'screenshot', screenshot_path])
        if not output.succeeded:
            raise DomainException(
                'Failed to capture screenshot: %s' % output.stderr.strip()
            )
        return screenshot_path
