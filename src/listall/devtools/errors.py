class DomainException(Exception):
    remediation = None

    def __init__(self, message, remediation=None):
        super().__init__(message)
        if remediation is not None:
            self.remediation = remediation

    def error_payload(self):
        payload = {'message': str(self)}
        if self.remediation:
            payload['remediation'] = self.remediation
        return payload


class InvalidParameters(DomainException):
    pass


class UnknownAction(InvalidParameters):
    def __init__(self, action_name, valid_actions):
        super().__init__(
            "Unknown action: '%s'. Valid actions: %s"
            % (action_name, ', '.join(valid_actions))
        )
        self.action_name = action_name


class UnknownMode(InvalidParameters):
    def __init__(self, mode_name, valid_modes):
        super().__init__(
            "Unknown mode: '%s'. Valid modes: %s"
            % (mode_name, ', '.join(valid_modes))
        )
        self.mode_name = mode_name


class LaunchFailure(DomainException):
    def __init__(self, command_line, reason):
        super().__init__(
            'Could not launch %s: %s' % (command_line, reason),
            remediation=(
                'Make sure Xcode and its command line tools are installed '
                '(xcode-select --install).'
            ),
        )
        self.command_line = command_line


class ProcessTimeout(DomainException):
    def __init__(self, timeout, command_line, pid=None, exit_code=None):
        super().__init__(
            'Command timed out after %ss: %s' % (format_seconds(timeout), command_line),
            remediation=(
                'The simulator may be unresponsive. Recovery steps:\n'
                '1. Run listall_screenshot to check simulator state\n'
                '2. Run listall_shutdown_simulator(udid: "all") to stop simulators\n'
                '3. Run listall_boot_simulator to restart\n'
                '4. Retry the operation'
            ),
        )
        self.timeout = timeout
        self.command_line = command_line
        self.pid = pid
        self.exit_code = exit_code


class ElementNotFound(DomainException):
    def __init__(self, target):
        super().__init__("Element not found: '%s'" % target)
        self.target = target


class NoFocusableElement(DomainException):
    def __init__(self):
        super().__init__(
            'No target given and no hittable text field found to type into.'
        )


class DefinitionNotFound(DomainException):
    def __init__(self, symbol_name, file_filter=None, suggestions=()):
        location = ' in %s' % file_filter if file_filter else ''
        super().__init__(
            "No definition found for '%s'%s." % (symbol_name, location),
            remediation=(
                'Use the indexed name format: "methodName(param1:param2:)", '
                '"methodName()" for methods without parameters or '
                '"propertyName" for properties. Check spelling and make sure '
                'the project has been built in Xcode. For framework symbols '
                'use mode "references" or "callers".'
            ),
        )
        self.symbol_name = symbol_name
        self.file_filter = file_filter
        self.suggestions = list(suggestions)

    def error_payload(self):
        payload = super().error_payload()
        payload['suggestions'] = list(self.suggestions)
        return payload


class IndexStoreNotFound(DomainException):
    def __init__(self, expected_location):
        super().__init__(
            'Could not find the Xcode index store.',
            remediation=(
                'Build the ListAll project in Xcode first, then try again. '
                'Expected location: %s' % expected_location
            ),
        )


class IndexStoreError(DomainException):
    pass


class ResultFileMissing(DomainException):
    def __init__(self, result_path, exit_code):
        super().__init__(
            'The UI test driver did not write a result file at %s. '
            'Driver exit code: %s' % (result_path, exit_code),
            remediation=(
                'Run listall_diagnostics to check that the XCUITest runner '
                'is built and a simulator is booted.'
            ),
        )
        self.result_path = result_path
        self.exit_code = exit_code


class ResultFileMalformed(DomainException):
    def __init__(self, details):
        super().__init__(
            'The UI test driver wrote an unusable result: %s' % details,
            remediation=(
                'Rebuild the UI test runner so that it matches this server '
                '(xcodebuild build-for-testing), then retry. Run '
                'listall_diagnostics to check the runner build.'
            ),
        )


class SimulatorQueryFailed(DomainException):
    def __init__(self, details):
        super().__init__(
            'Failed to query simulators: %s' % details,
            remediation='Boot a simulator with listall_boot_simulator.',
        )


class TestBuildFailed(DomainException):
    __test__ = False

    def __init__(self, details):
        super().__init__(
            'Failed to build the UI test runner: %s' % details,
            remediation=(
                'Open the project in Xcode and make sure the UI test scheme '
                'builds for the simulator.'
            ),
        )


class WatchBatchTooLarge(InvalidParameters):
    def __init__(self, requested, maximum):
        super().__init__(
            'watchOS batch size %s exceeds maximum of %s actions.'
            % (requested, maximum),
            remediation=(
                'watchOS actions take 8-15 seconds each. Split the sequence '
                'into batches of at most %s actions.' % maximum
            ),
        )
        self.requested = requested
        self.maximum = maximum


def format_seconds(seconds):
    if float(seconds).is_integer():
        return '%d' % seconds
    return '%s' % seconds
