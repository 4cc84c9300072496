"""Executes command files against a running application.

The driver is the consumer of the command/result file pair. It is written
against a small backend protocol so that any UI automation layer can
perform the gestures:

``backend.application(bundle_id)`` returns an application object with
``is_running_foreground()``, ``launch(arguments)``,
``wait_for_foreground(timeout)``, ``children()`` and ``swipe(direction)``.

Elements expose ``element_type``, ``identifier``, ``label``, ``value``,
``is_enabled``, ``children()``, ``exists()``,
``wait_for_existence(timeout)``, ``is_hittable()``, ``frame()`` (an
``(x, y, width, height)`` tuple), ``tap()``, ``tap_at_center()``,
``press(duration)``, ``press_at_center(duration)``, ``type_text(text)``,
``clear_text()`` and ``swipe(direction)``.
"""

import argparse
import importlib
import json
import logging
import os
import sys
import time

from listall.devtools.automation.commands import ActionKind
from listall.devtools.automation.commands import ActionResult
from listall.devtools.automation.commands import BatchResult
from listall.devtools.automation.commands import action_from_arguments
from listall.devtools.automation.commands import write_json_atomically
from listall.devtools.errors import DomainException
from listall.devtools.errors import ElementNotFound
from listall.devtools.errors import InvalidParameters
from listall.devtools.errors import NoFocusableElement


LAUNCH_ARGUMENTS = ('UITEST_MODE', 'DISABLE_TOOLTIPS')
MODAL_CONTAINER_TYPES = ('sheet', 'alert', 'navigationBar')
PREFERRED_ELEMENT_TYPES = (
    'button',
    'textField',
    'staticText',
    'cell',
    'switch',
    'image',
)
TEXT_INPUT_TYPES = ('textField', 'textView', 'searchField')
MAXIMUM_QUERY_ELEMENTS = 100
MAXIMUM_PRESS_DURATION = 10.0


class ApplicationNotReady(DomainException):
    def __init__(self, bundle_id):
        super().__init__(
            "Application '%s' did not reach the foreground." % bundle_id
        )


def descendants_of(element, depth=None):
    found = []
    pending = [(child, 1) for child in element.children()]
    while pending:
        child, level = pending.pop(0)
        found.append(child)
        if depth is None or level < depth:
            pending.extend((grandchild, level + 1) for grandchild in child.children())
    return found


def type_preference(element):
    if element.element_type in PREFERRED_ELEMENT_TYPES:
        return PREFERRED_ELEMENT_TYPES.index(element.element_type)
    return len(PREFERRED_ELEMENT_TYPES)


def action_name_of(command):
    if isinstance(command, dict) and isinstance(command.get('action'), str):
        return command['action']
    return 'unknown'


def frame_description(frame):
    x, y, width, height = frame
    return 'x:%d, y:%d, w:%d, h:%d' % (x, y, width, height)


class ElementResolver:
    def resolve(self, application, identifier=None, label=None):
        if not (identifier or label):
            raise ElementNotFound('unknown')
        for container_type in MODAL_CONTAINER_TYPES:
            for container in self.elements_of_type(application, container_type):
                element = self.matching_element(
                    descendants_of(container),
                    identifier,
                    label,
                )
                if element is not None:
                    return element
        element = self.matching_element(
            descendants_of(application),
            identifier,
            label,
        )
        if element is None:
            raise ElementNotFound(identifier or label)
        return element

    def elements_of_type(self, application, element_type):
        return [
            element
            for element in descendants_of(application)
            if element.element_type == element_type
        ]

    def matching_element(self, elements, identifier, label):
        if identifier:
            candidates = [
                element for element in elements if element.identifier == identifier
            ]
            if candidates:
                return min(candidates, key=type_preference)
        if label:
            lowered_label = label.lower()
            candidates = [
                element
                for element in elements
                if element.label and lowered_label in element.label.lower()
            ]
            if candidates:
                return min(candidates, key=type_preference)
        return None


class CommandRunner:
    def __init__(
        self,
        backend,
        command_path,
        result_path,
        default_timeout=10.0,
        stability_timeout=0.5,
        stability_interval=0.05,
        stable_sample_count=3,
        settle_delay=0.1,
        sleep=time.sleep,
        clock=time.monotonic,
    ):
        self.backend = backend
        self.command_path = command_path
        self.result_path = result_path
        self.default_timeout = default_timeout
        self.stability_timeout = stability_timeout
        self.stability_interval = stability_interval
        self.stable_sample_count = stable_sample_count
        self.settle_delay = settle_delay
        self.sleep = sleep
        self.clock = clock
        self.resolver = ElementResolver()
        self.action_performers = {
            ActionKind.CLICK: self.click,
            ActionKind.TYPE: self.type_text,
            ActionKind.SWIPE: self.swipe,
            ActionKind.QUERY: self.query,
            ActionKind.LONG_PRESS: self.long_press,
        }

    def run(self):
        if not os.path.exists(self.command_path):
            logging.getLogger(__name__).info(
                'No command file at %s, nothing to do',
                self.command_path,
            )
            return None
        try:
            result = self.execute_document(self.read_command())
        except (DomainException, ValueError, KeyError) as error:
            result = ActionResult.failed('Command execution failed', error)
        write_json_atomically(self.result_path, result.as_document())
        return result

    def read_command(self):
        with open(self.command_path, encoding='utf-8') as command_file:
            return json.load(command_file)

    def execute_document(self, document):
        bundle_id = document['bundleId']
        commands = document.get('commands')
        if commands:
            if not isinstance(commands, list):
                raise InvalidParameters('commands must be a list of objects.')
            return self.execute_batch(bundle_id, commands)
        single_fields = {
            field_name: value
            for field_name, value in document.items()
            if field_name not in ('bundleId', 'commands')
        }
        return self.execute_single(bundle_id, action_from_arguments(single_fields))

    def execute_single(self, bundle_id, action):
        try:
            application = self.prepared_application(
                bundle_id,
                action.timeout or self.default_timeout,
            )
            return self.perform(application, action)
        except Exception as error:
            logging.getLogger(__name__).debug(
                '%s failed',
                action.kind.value,
                exc_info=True,
            )
            return ActionResult.failed('Command execution failed', error)

    def execute_batch(self, bundle_id, commands):
        try:
            application = self.prepared_application(bundle_id, self.default_timeout)
        except Exception as error:
            logging.getLogger(__name__).debug('Launch failed', exc_info=True)
            results = [
                ActionResult.failed(
                    'Action %s (%s) failed' % (index + 1, action_name_of(command)),
                    error,
                )
                for index, command in enumerate(commands)
            ]
        else:
            results = []
            for index, command in enumerate(commands):
                try:
                    action = action_from_arguments(command)
                    results.append(self.perform(application, action))
                except Exception as error:
                    logging.getLogger(__name__).debug(
                        'Action %s (%s) failed',
                        index + 1,
                        action_name_of(command),
                        exc_info=True,
                    )
                    results.append(
                        ActionResult.failed(
                            'Action %s (%s) failed'
                            % (index + 1, action_name_of(command)),
                            error,
                        )
                    )
        success_count = len([result for result in results if result.success])
        failure_count = len(results) - success_count
        return BatchResult(
            failure_count == 0,
            'Executed %s actions: %s succeeded, %s failed'
            % (len(results), success_count, failure_count),
            results,
            error='One or more actions failed' if failure_count else None,
        )

    def prepared_application(self, bundle_id, timeout):
        application = self.backend.application(bundle_id)
        if not application.is_running_foreground():
            application.launch(list(LAUNCH_ARGUMENTS))
            if not application.wait_for_foreground(timeout):
                raise ApplicationNotReady(bundle_id)
        return application

    def perform(self, application, action):
        return self.action_performers[action.kind](application, action)

    def resolved_element(self, application, action):
        element = self.resolver.resolve(
            application,
            identifier=action.identifier,
            label=action.label,
        )
        if not element.wait_for_existence(action.timeout or self.default_timeout):
            raise ElementNotFound(action.target_description)
        return element

    def wait_for_stability(self, element):
        started_at = self.clock()
        last_x, last_y = element.frame()[:2]
        stable_samples = 0
        while self.clock() - started_at < self.stability_timeout:
            self.sleep(self.stability_interval)
            current_x, current_y = element.frame()[:2]
            if abs(current_x - last_x) < 1 and abs(current_y - last_y) < 1:
                stable_samples += 1
                if stable_samples >= self.stable_sample_count:
                    return True
            else:
                stable_samples = 0
            last_x, last_y = current_x, current_y
        return False

    def click(self, application, action):
        element = self.resolved_element(application, action)
        element_type = element.element_type
        element_frame = frame_description(element.frame())
        self.wait_for_stability(element)
        hint = None
        used_fallback_path = not element.is_hittable()
        if used_fallback_path:
            element.tap_at_center()
            hint = 'Element was not hittable, used coordinate-based tap.'
        else:
            element.tap()
        self.sleep(self.settle_delay)
        return ActionResult(
            True,
            "Successfully clicked '%s'" % (action.target_description or 'element'),
            element_type=element_type,
            element_frame=element_frame,
            used_fallback_path=used_fallback_path,
            hint=hint,
        )

    def long_press(self, application, action):
        duration = min(action.duration or 1.0, MAXIMUM_PRESS_DURATION)
        element = self.resolved_element(application, action)
        element_type = element.element_type
        element_frame = frame_description(element.frame())
        self.wait_for_stability(element)
        hint = None
        used_fallback_path = not element.is_hittable()
        if used_fallback_path:
            element.press_at_center(duration)
            hint = 'Element was not hittable, used coordinate-based long press.'
        else:
            element.press(duration)
        self.sleep(self.settle_delay)
        return ActionResult(
            True,
            "Successfully long-pressed '%s' for %ss"
            % (action.target_description or 'element', float(duration)),
            element_type=element_type,
            element_frame=element_frame,
            used_fallback_path=used_fallback_path,
            hint=hint,
        )

    def type_text(self, application, action):
        # Only command files not written by the bridge omit the target.
        if action.target_description:
            element = self.resolved_element(application, action)
        else:
            element = self.first_focusable_text_input(application)
        element.tap()
        if action.clear_first:
            element.clear_text()
        element.type_text(action.text)
        return ActionResult(
            True,
            "Successfully typed '%s' into '%s'"
            % (action.text, action.target_description or 'focused element'),
        )

    def first_focusable_text_input(self, application):
        elements = descendants_of(application)
        for text_input_type in TEXT_INPUT_TYPES:
            for element in elements:
                if (
                    element.element_type == text_input_type
                    and element.exists()
                    and element.is_hittable()
                ):
                    return element
        raise NoFocusableElement()

    def swipe(self, application, action):
        if action.target_description:
            self.resolved_element(application, action).swipe(action.direction)
        else:
            application.swipe(action.direction)
        self.sleep(self.settle_delay)
        return ActionResult(
            True,
            "Successfully swiped %s on '%s'"
            % (action.direction, action.target_description or 'app window'),
        )

    def query(self, application, action):
        role = action.role.lower() if action.role else None
        elements = []
        for element in descendants_of(application, depth=action.depth or 3):
            if not element.exists():
                continue
            element_info = {'type': element.element_type}
            if element.identifier:
                element_info['identifier'] = element.identifier
            if element.label:
                element_info['label'] = element.label
            if isinstance(element.value, str) and element.value:
                element_info['value'] = element.value
            element_info['isEnabled'] = 'true' if element.is_enabled else 'false'
            element_info['isHittable'] = 'true' if element.is_hittable() else 'false'
            if role and not (
                role in element.element_type.lower()
                or role in element_info.get('identifier', '').lower()
            ):
                continue
            elements.append(element_info)
            if len(elements) >= MAXIMUM_QUERY_ELEMENTS:
                break
        return ActionResult(
            True,
            'Found %s elements' % len(elements),
            elements=elements,
        )


def load_backend(backend_reference):
    module_name, separator, factory_name = backend_reference.partition(':')
    if not separator or not module_name or not factory_name:
        raise ValueError('backend must be given as module:factory.')
    backend_factory = getattr(importlib.import_module(module_name), factory_name)
    return backend_factory()


def run_driver(arguments=None):
    parser = argparse.ArgumentParser(
        description='Execute a ListAll MCP command file against an application.'
    )
    parser.add_argument(
        '--backend',
        default=os.environ.get('LISTALL_MCP_DRIVER_BACKEND'),
        help='UI automation backend factory as module:callable.',
    )
    parser.add_argument(
        '--command-path',
        default=os.environ.get(
            'LISTALL_MCP_COMMAND_PATH',
            '/tmp/listall_mcp_command.json',
        ),
    )
    parser.add_argument(
        '--result-path',
        default=os.environ.get(
            'LISTALL_MCP_RESULT_PATH',
            '/tmp/listall_mcp_result.json',
        ),
    )
    parsed_arguments = parser.parse_args(arguments)
    if not parsed_arguments.backend:
        parser.error('--backend is required (or set LISTALL_MCP_DRIVER_BACKEND).')
    logging.basicConfig(stream=sys.stderr, level=logging.INFO)
    command_runner = CommandRunner(
        load_backend(parsed_arguments.backend),
        parsed_arguments.command_path,
        parsed_arguments.result_path,
    )
    result = command_runner.run()
    if result is not None and not result.success:
        return 1
    return 0


def main():
    sys.exit(run_driver())


if __name__ == '__main__':
    main()
