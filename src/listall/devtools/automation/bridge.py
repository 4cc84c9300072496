import asyncio
import json
import logging
import os
import shutil

from listall.devtools.automation.commands import BatchRequest
from listall.devtools.automation.commands import remove_if_present
from listall.devtools.automation.commands import write_json_atomically
from listall.devtools.errors import ResultFileMalformed
from listall.devtools.errors import ResultFileMissing
from listall.devtools.errors import TestBuildFailed
from listall.devtools.errors import WatchBatchTooLarge
from listall.devtools.validation import sdk_version_of_xctestrun


SDK_MISMATCH_EXIT_CODE = 70


class CommandLineDriver:
    def __init__(self, runner, command_line):
        if not command_line:
            raise ValueError('command_line cannot be empty.')
        self.runner = runner
        self.command_line = list(command_line)

    async def run(self, target, timeout, command_path, result_path):
        environment = dict(os.environ)
        environment.update(
            {
                'LISTALL_MCP_COMMAND_PATH': command_path,
                'LISTALL_MCP_RESULT_PATH': result_path,
                'LISTALL_MCP_SIMULATOR_UDID': target.udid,
            }
        )
        return await self.runner.execute(
            self.command_line[0],
            self.command_line[1:],
            environment=environment,
            timeout=timeout,
        )


class XcodeTestDriver:
    def __init__(self, runner, configuration):
        self.runner = runner
        self.configuration = configuration

    async def run(self, target, timeout, command_path, result_path):
        xctestrun_path = self.find_xctestrun(target.platform)
        if xctestrun_path is None:
            logging.getLogger(__name__).info(
                'No xctestrun found, building the test runner first'
            )
            await self.build_for_testing(target, timeout)
            xctestrun_path = self.required_xctestrun(target.platform)
        output = await self.test_without_building(xctestrun_path, target, timeout)
        if output.exit_code == SDK_MISMATCH_EXIT_CODE:
            logging.getLogger(__name__).warning(
                'SDK mismatch running %s (xctestrun SDK %s), rebuilding',
                xctestrun_path,
                sdk_version_of_xctestrun(xctestrun_path),
            )
            self.clean_derived_data()
            await self.build_for_testing(target, timeout)
            output = await self.test_without_building(
                self.required_xctestrun(target.platform),
                target,
                timeout,
            )
        return output

    def find_xctestrun(self, platform):
        for project_directory in self.configuration.project_derived_data_directories():
            products_path = os.path.join(project_directory, 'Build', 'Products')
            if not os.path.isdir(products_path):
                continue
            for file_name in sorted(os.listdir(products_path)):
                if file_name.endswith('.xctestrun') and platform.sdk_pattern in file_name:
                    return os.path.join(products_path, file_name)
        return None

    def required_xctestrun(self, platform):
        xctestrun_path = self.find_xctestrun(platform)
        if xctestrun_path is None:
            raise TestBuildFailed('build-for-testing did not generate an xctestrun file')
        return xctestrun_path

    def destination(self, target):
        return 'platform=%s,id=%s' % (target.platform.destination, target.udid)

    async def test_without_building(self, xctestrun_path, target, timeout):
        return await self.runner.execute(
            self.configuration.xcodebuild_path,
            [
                'test-without-building',
                '-xctestrun',
                xctestrun_path,
                '-destination',
                self.destination(target),
                '-only-testing:%s' % target.platform.test_identifier,
                '-parallel-testing-enabled',
                'NO',
                '-disable-concurrent-destination-testing',
            ],
            timeout=timeout,
        )

    async def build_for_testing(self, target, timeout):
        output = await self.runner.execute(
            self.configuration.xcodebuild_path,
            [
                'build-for-testing',
                '-project',
                self.configuration.project_path,
                '-scheme',
                target.platform.scheme_name,
                '-destination',
                self.destination(target),
                '-configuration',
                'Debug',
            ],
            timeout=self.configuration.build_timeout(timeout),
        )
        if not output.succeeded:
            logging.getLogger(__name__).warning(
                'build-for-testing failed: %s',
                output.stderr[:500],
            )
            raise TestBuildFailed(
                'build-for-testing failed with exit %s' % output.exit_code
            )
        return output

    def clean_derived_data(self):
        for project_directory in self.configuration.project_derived_data_directories():
            logging.getLogger(__name__).info(
                'Cleaning DerivedData: %s',
                project_directory,
            )
            try:
                shutil.rmtree(project_directory)
            except OSError as error:
                logging.getLogger(__name__).warning(
                    'Failed to clean %s: %s',
                    project_directory,
                    error,
                )


def driver_for_configuration(configuration, runner):
    if configuration.driver_command:
        return CommandLineDriver(runner, configuration.driver_command)
    return XcodeTestDriver(runner, configuration)


class CommandBridge:
    def __init__(self, configuration, runner, simulators, driver=None):
        self.configuration = configuration
        self.runner = runner
        self.simulators = simulators
        self.driver = driver or driver_for_configuration(configuration, runner)
        self.dispatch_lock = asyncio.Lock()

    async def dispatch(self, request, udid='booted'):
        request.validate()
        target = await self.simulators.target_for(udid)
        is_watch = target.platform.is_watch
        if (
            is_watch
            and isinstance(request, BatchRequest)
            and request.action_count > self.configuration.watch_max_batch_size
        ):
            raise WatchBatchTooLarge(
                request.action_count,
                self.configuration.watch_max_batch_size,
            )
        timeout = request.driver_timeout(self.configuration, is_watch=is_watch)
        async with self.dispatch_lock:
            return await self.exchange(request, target, timeout)

    async def exchange(self, request, target, timeout):
        command_path, result_path = self.configuration.command_file_paths(
            is_watch=target.platform.is_watch
        )
        remove_if_present(command_path)
        remove_if_present(result_path)
        try:
            write_json_atomically(command_path, request.command_document())
            logging.getLogger(__name__).info(
                'Wrote %s command to %s, running test driver (timeout %ss)',
                request.description,
                command_path,
                timeout,
            )
            output = await self.driver.run(target, timeout, command_path, result_path)
            logging.getLogger(__name__).info(
                'Test driver exit code: %s',
                output.exit_code,
            )
            if not output.succeeded:
                logging.getLogger(__name__).debug(
                    'Test driver stderr:\n%s\nstdout:\n%s',
                    output.stderr[:2000],
                    output.stdout[:2000],
                )
            if not os.path.exists(result_path):
                raise ResultFileMissing(result_path, output.exit_code)
            result = request.result_from_document(self.read_result(result_path))
            logging.getLogger(__name__).info(
                'Result - success: %s, message: %s',
                result.success,
                result.message,
            )
            return result
        finally:
            remove_if_present(command_path)
            remove_if_present(result_path)

    def read_result(self, result_path):
        try:
            with open(result_path, encoding='utf-8') as result_file:
                return json.load(result_file)
        except ValueError as error:
            raise ResultFileMalformed(
                'could not parse %s (%s)' % (result_path, error)
            ) from error
