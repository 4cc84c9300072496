import functools
import inspect
import logging
import os
import time
import uuid

from listall.devtools import __version__
from listall.devtools.automation.bridge import CommandBridge
from listall.devtools.automation.commands import ActionKind
from listall.devtools.automation.commands import ClickAction
from listall.devtools.automation.commands import LongPressAction
from listall.devtools.automation.commands import QueryAction
from listall.devtools.automation.commands import SingleActionRequest
from listall.devtools.automation.commands import SwipeAction
from listall.devtools.automation.commands import TypeAction
from listall.devtools.automation.commands import batch_request_from_arguments
from listall.devtools.automation.process import ProcessRunner
from listall.devtools.automation.simulators import SimulatorDirectory
from listall.devtools.configuration import DevToolsConfiguration
from listall.devtools.diagnostics import EnvironmentProbe
from listall.devtools.errors import DomainException
from listall.devtools.errors import InvalidParameters
from listall.devtools.indexstore.query import IndexQuery
from listall.devtools.indexstore.query import QueryMode
from listall.devtools.indexstore.store import open_index_store
from listall.devtools.indexstore.store import opened_index_store
from listall.devtools.validation import sanitized_screenshot_context
from listall.devtools.validation import validated_udid


DEVICE_TYPES = ('all', 'iPhone', 'iPad', 'Apple Watch')
DEVICE_STATES = ('all', 'Booted', 'Shutdown')


def failure(error):
    return {'ok': False, 'error': error.error_payload()}


def register_tools(
    mcp_server,
    configuration=None,
    runner=None,
    bridge=None,
    simulators=None,
    store_opener=None,
    diagnostics=None,
):
    if configuration is None:
        configuration = DevToolsConfiguration.from_environment()
    if runner is None:
        runner = ProcessRunner.from_configuration(configuration)
    if simulators is None:
        simulators = SimulatorDirectory(runner)
    if bridge is None:
        bridge = CommandBridge(configuration, runner, simulators)
    if store_opener is None:
        store_opener = open_index_store
    if diagnostics is None:
        diagnostics = EnvironmentProbe(configuration, runner, simulators=simulators)

    def log_tool_call(tool_name, started_at):
        logging.getLogger(__name__).info(
            'Tool %s finished in %sms',
            tool_name,
            int((time.perf_counter() - started_at) * 1000),
        )

    original_tool_decorator_factory = mcp_server.tool

    def timed_tool_decorator_factory(*decorator_arguments, **decorator_keywords):
        tool_decorator = original_tool_decorator_factory(
            *decorator_arguments,
            **decorator_keywords,
        )

        def timed_tool_decorator(function):
            if inspect.iscoroutinefunction(function):

                @functools.wraps(function)
                async def timed_tool(*function_arguments, **function_keywords):
                    started_at = time.perf_counter()
                    try:
                        return await function(*function_arguments, **function_keywords)
                    finally:
                        log_tool_call(function.__name__, started_at)

            else:

                @functools.wraps(function)
                def timed_tool(*function_arguments, **function_keywords):
                    started_at = time.perf_counter()
                    try:
                        return function(*function_arguments, **function_keywords)
                    finally:
                        log_tool_call(function.__name__, started_at)

            return tool_decorator(timed_tool)

        return timed_tool_decorator

    try:
        mcp_server.tool = timed_tool_decorator_factory
    except AttributeError:
        pass

    async def dispatched_action(bundle_id, action, udid):
        result = await bridge.dispatch(
            SingleActionRequest(bundle_id, action),
            udid=validated_udid(udid),
        )
        tool_result = {
            'ok': result.success,
            'bundle_id': bundle_id,
            'action': action.kind.value,
            'result': result.as_document(),
            'summary': result.summary_text(),
        }
        if not result.success:
            tool_result['error'] = {'message': result.message}
            if result.error:
                tool_result['error']['details'] = result.error
        return tool_result

    @mcp_server.tool()
    async def listall_click(
        bundle_id,
        identifier=None,
        label=None,
        udid='booted',
        timeout=None,
    ):
        try:
            action = ClickAction(identifier=identifier, label=label, timeout=timeout)
            return await dispatched_action(bundle_id, action, udid)
        except DomainException as error:
            return failure(error)

    @mcp_server.tool()
    async def listall_type(
        bundle_id,
        text,
        identifier=None,
        label=None,
        clear_first=False,
        udid='booted',
        timeout=None,
    ):
        try:
            action = TypeAction(
                text=text,
                clear_first=clear_first,
                identifier=identifier,
                label=label,
                timeout=timeout,
            )
            return await dispatched_action(bundle_id, action, udid)
        except DomainException as error:
            return failure(error)

    @mcp_server.tool()
    async def listall_swipe(
        bundle_id,
        direction,
        identifier=None,
        label=None,
        udid='booted',
        timeout=None,
    ):
        try:
            action = SwipeAction(
                direction=direction,
                identifier=identifier,
                label=label,
                timeout=timeout,
            )
            return await dispatched_action(bundle_id, action, udid)
        except DomainException as error:
            return failure(error)

    @mcp_server.tool()
    async def listall_long_press(
        bundle_id,
        identifier=None,
        label=None,
        duration=None,
        udid='booted',
        timeout=None,
    ):
        try:
            action = LongPressAction(
                duration=duration,
                identifier=identifier,
                label=label,
                timeout=timeout,
            )
            return await dispatched_action(bundle_id, action, udid)
        except DomainException as error:
            return failure(error)

    @mcp_server.tool()
    async def listall_query(
        bundle_id,
        role=None,
        depth=None,
        udid='booted',
        timeout=None,
    ):
        try:
            action = QueryAction(role=role, depth=depth, timeout=timeout)
            return await dispatched_action(bundle_id, action, udid)
        except DomainException as error:
            return failure(error)

    @mcp_server.tool()
    async def listall_batch(bundle_id, actions, udid='booted'):
        try:
            request = batch_request_from_arguments(bundle_id, actions)
            result = await bridge.dispatch(request, udid=validated_udid(udid))
        except DomainException as error:
            return failure(error)
        tool_result = {
            'ok': result.success,
            'bundle_id': bundle_id,
            'action_count': request.action_count,
            'succeeded_count': len(
                [action_result for action_result in result.results if action_result.success]
            ),
            'result': result.as_document(),
            'summary': result.summary_text(request.actions),
        }
        if not result.success:
            tool_result['error'] = {'message': result.message}
            if result.error:
                tool_result['error']['details'] = result.error
        return tool_result

    @mcp_server.tool()
    async def listall_call_graph(
        symbol,
        file=None,
        mode=None,
        include_source=False,
        direction=None,
    ):
        try:
            query_mode = QueryMode.from_arguments(mode, direction)
            if not isinstance(include_source, bool):
                raise InvalidParameters('include_source must be a boolean.')
            with opened_index_store(configuration, store_opener) as store:
                report_text = IndexQuery(store, configuration).run(
                    symbol,
                    mode=query_mode,
                    file_filter=file,
                    include_source=include_source,
                )
        except DomainException as error:
            return failure(error)
        return {
            'ok': True,
            'symbol': symbol,
            'mode': query_mode.value,
            'report': report_text,
        }

    @mcp_server.tool()
    async def listall_diagnostics():
        diagnostics_report = await diagnostics.run()
        return {
            'ok': True,
            'ready': diagnostics_report.is_ready,
            'issue_count': diagnostics_report.issue_count,
            'report': diagnostics_report.render(),
        }

    @mcp_server.tool()
    async def listall_list_simulators(device_type='all', state='all'):
        try:
            if device_type not in DEVICE_TYPES:
                raise InvalidParameters(
                    "Invalid device_type '%s'. Must be one of: %s"
                    % (device_type, ', '.join(DEVICE_TYPES))
                )
            if state not in DEVICE_STATES:
                raise InvalidParameters(
                    "Invalid state '%s'. Must be one of: %s"
                    % (state, ', '.join(DEVICE_STATES))
                )
            devices = await simulators.available_devices(
                device_type=device_type,
                state=state,
            )
        except DomainException as error:
            return failure(error)
        return {
            'ok': True,
            'simulators': [device.summary() for device in devices],
            'total_count': len(devices),
        }

    @mcp_server.tool()
    async def listall_boot_simulator(udid):
        try:
            message = await simulators.boot(validated_udid(udid))
        except DomainException as error:
            return failure(error)
        return {'ok': True, 'udid': udid, 'message': message}

    @mcp_server.tool()
    async def listall_shutdown_simulator(udid):
        try:
            message = await simulators.shutdown(validated_udid(udid, allow_all=True))
        except DomainException as error:
            return failure(error)
        return {'ok': True, 'udid': udid, 'message': message}

    @mcp_server.tool()
    async def listall_screenshot(udid='booted', context=None):
        try:
            if context is not None and not isinstance(context, str):
                raise InvalidParameters('context must be a string.')
            resolved_udid = await simulators.resolve_udid(validated_udid(udid))
            screenshot_path = os.path.join(
                configuration.screenshot_directory,
                '%s-%s-%s.png'
                % (
                    time.strftime('%y%m%d-%H%M%S'),
                    sanitized_screenshot_context(context),
                    uuid.uuid4().hex[:6],
                ),
            )
            await simulators.screenshot(resolved_udid, screenshot_path)
        except DomainException as error:
            return failure(error)
        return {'ok': True, 'udid': resolved_udid, 'path': screenshot_path}

    @mcp_server.tool()
    def listall_capabilities():
        return {
            'ok': True,
            'server_name': 'ListAllMCP',
            'version': __version__,
            'tool_groups': {
                'interaction': [
                    'listall_click',
                    'listall_type',
                    'listall_swipe',
                    'listall_long_press',
                    'listall_query',
                    'listall_batch',
                ],
                'simulators': [
                    'listall_list_simulators',
                    'listall_boot_simulator',
                    'listall_shutdown_simulator',
                    'listall_screenshot',
                ],
                'code_navigation': ['listall_call_graph'],
                'environment': ['listall_diagnostics', 'listall_capabilities'],
            },
            'call_graph_modes': [query_mode.value for query_mode in QueryMode],
            'batch_actions': [action_kind.value for action_kind in ActionKind],
            'watch_max_batch_size': configuration.watch_max_batch_size,
            'ui_driver': (
                'command' if configuration.driver_command else 'xcodebuild'
            ),
            'index_store': (
                configuration.index_store_path
                or configuration.expected_index_store_location()
            ),
            'recommended_bootstrap': [
                'listall_diagnostics',
                'listall_list_simulators',
                'listall_boot_simulator',
            ],
        }
