import asyncio
import logging
import shlex
import threading

from listall.devtools.errors import LaunchFailure
from listall.devtools.errors import ProcessTimeout


class ProcessOutput:
    def __init__(self, command_line, exit_code, stdout, stderr):
        self.command_line = command_line
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr

    @property
    def succeeded(self):
        return self.exit_code == 0


class ProcessExecution:
    def __init__(self, process, command_line, timeout):
        self.process = process
        self.command_line = command_line
        self.timeout = timeout
        self.timeout_handle = None
        self.resolution_lock = threading.Lock()
        self.is_resolved = False

    def claim_resolution(self):
        with self.resolution_lock:
            if self.is_resolved:
                return False
            self.is_resolved = True
            return True

    def cancel_timeout(self):
        if self.timeout_handle is not None:
            self.timeout_handle.cancel()


class ProcessRunner:
    def __init__(
        self,
        default_timeout=120.0,
        termination_grace_period=2.0,
        simctl_timeout=30.0,
        xcrun_path='/usr/bin/xcrun',
    ):
        self.default_timeout = default_timeout
        self.termination_grace_period = termination_grace_period
        self.simctl_timeout = simctl_timeout
        self.xcrun_path = xcrun_path

    @classmethod
    def from_configuration(cls, configuration):
        return cls(
            default_timeout=configuration.default_timeout,
            termination_grace_period=configuration.termination_grace_period,
            simctl_timeout=configuration.simctl_timeout,
            xcrun_path=configuration.xcrun_path,
        )

    async def execute(self, command, arguments=(), environment=None, timeout=None):
        timeout = self.default_timeout if timeout is None else timeout
        command_line = shlex.join([command, *arguments])
        logging.getLogger(__name__).debug(
            'Executing %s (timeout %ss)',
            command_line,
            timeout,
        )
        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *arguments,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=environment,
            )
        except OSError as error:
            raise LaunchFailure(command_line, error) from error

        execution = ProcessExecution(process, command_line, timeout)
        outcome = asyncio.get_running_loop().create_future()
        output_collection = asyncio.ensure_future(process.communicate())
        output_collection.add_done_callback(
            lambda collection: self.process_exited(execution, collection, outcome)
        )
        execution.timeout_handle = asyncio.get_running_loop().call_later(
            timeout,
            self.deadline_reached,
            execution,
            outcome,
        )
        try:
            return await outcome
        except asyncio.CancelledError:
            if execution.claim_resolution():
                execution.cancel_timeout()
                logging.getLogger(__name__).debug(
                    'Cancelled while running %s, terminating pid %s',
                    command_line,
                    process.pid,
                )
                self.send_terminate(process)
            raise

    def process_exited(self, execution, output_collection, outcome):
        if output_collection.cancelled():
            collection_error = asyncio.CancelledError()
        else:
            collection_error = output_collection.exception()
        execution.cancel_timeout()
        if not execution.claim_resolution() or outcome.done():
            return
        if collection_error is not None:
            outcome.set_exception(collection_error)
            return
        stdout, stderr = output_collection.result()
        outcome.set_result(
            ProcessOutput(
                execution.command_line,
                execution.process.returncode,
                stdout.decode('utf-8', errors='replace'),
                stderr.decode('utf-8', errors='replace'),
            )
        )

    def deadline_reached(self, execution, outcome):
        if not execution.claim_resolution():
            return
        logging.getLogger(__name__).warning(
            'Timeout after %ss, terminating %s',
            execution.timeout,
            execution.command_line,
        )
        termination = asyncio.ensure_future(
            self.terminate_and_reap(execution.process)
        )

        def reaped(finished_termination):
            if outcome.done():
                return
            if not finished_termination.cancelled():
                termination_error = finished_termination.exception()
                if termination_error is not None:
                    outcome.set_exception(termination_error)
                    return
            outcome.set_exception(
                ProcessTimeout(
                    execution.timeout,
                    execution.command_line,
                    pid=execution.process.pid,
                    exit_code=execution.process.returncode,
                )
            )

        termination.add_done_callback(reaped)

    async def terminate_and_reap(self, process):
        self.send_terminate(process)
        try:
            await asyncio.wait_for(
                process.wait(),
                timeout=self.termination_grace_period,
            )
        except asyncio.TimeoutError:
            logging.getLogger(__name__).warning(
                'pid %s ignored terminate, killing it',
                process.pid,
            )
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()

    def send_terminate(self, process):
        try:
            process.terminate()
        except ProcessLookupError:
            logging.getLogger(__name__).debug(
                'pid %s already exited',
                process.pid,
            )

    async def simctl(self, arguments, timeout=None):
        return await self.execute(
            self.xcrun_path,
            ['simctl', *arguments],
            timeout=self.simctl_timeout if timeout is None else timeout,
        )
