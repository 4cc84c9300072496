from listall.devtools.automation.bridge import CommandBridge
from listall.devtools.automation.bridge import CommandLineDriver
from listall.devtools.automation.bridge import XcodeTestDriver
from listall.devtools.automation.commands import ActionKind
from listall.devtools.automation.commands import ActionResult
from listall.devtools.automation.commands import BatchRequest
from listall.devtools.automation.commands import BatchResult
from listall.devtools.automation.commands import SingleActionRequest
from listall.devtools.automation.commands import action_from_arguments
from listall.devtools.automation.commands import batch_request_from_arguments
from listall.devtools.automation.driver import CommandRunner
from listall.devtools.automation.process import ProcessOutput
from listall.devtools.automation.process import ProcessRunner
from listall.devtools.automation.simulators import SimulatorDirectory
from listall.devtools.automation.simulators import SimulatorPlatform

__all__ = [
    'ActionKind',
    'ActionResult',
    'BatchRequest',
    'BatchResult',
    'CommandBridge',
    'CommandLineDriver',
    'CommandRunner',
    'ProcessOutput',
    'ProcessRunner',
    'SimulatorDirectory',
    'SimulatorPlatform',
    'SingleActionRequest',
    'XcodeTestDriver',
    'action_from_arguments',
    'batch_request_from_arguments',
]
