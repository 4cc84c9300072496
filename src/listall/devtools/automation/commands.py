import enum
import json
import os
import tempfile

from listall.devtools.errors import InvalidParameters
from listall.devtools.errors import ResultFileMalformed
from listall.devtools.errors import UnknownAction
from listall.devtools.validation import validated_bundle_id


class ActionKind(enum.Enum):
    CLICK = 'click'
    TYPE = 'type'
    SWIPE = 'swipe'
    QUERY = 'query'
    LONG_PRESS = 'longPress'

    @classmethod
    def named(cls, action_name):
        for action_kind in cls:
            if action_kind.value == action_name:
                return action_kind
        raise UnknownAction(action_name, [action_kind.value for action_kind in cls])


SWIPE_DIRECTIONS = ('up', 'down', 'left', 'right')

ARGUMENT_ALIASES = {
    'clearFirst': 'clear_first',
    'queryRole': 'role',
    'query_role': 'role',
    'queryDepth': 'depth',
    'query_depth': 'depth',
}


class Action:
    kind = None
    requires_target = True
    argument_names = ('identifier', 'label', 'timeout')

    def __init__(self, identifier=None, label=None, timeout=None):
        self.identifier = optional_string(identifier, 'identifier')
        self.label = optional_string(label, 'label')
        self.timeout = optional_positive_number(timeout, 'timeout')

    @property
    def target_description(self):
        return self.identifier or self.label

    def validate(self):
        if self.requires_target and not (self.identifier or self.label):
            raise InvalidParameters(
                "%s action requires either 'identifier' or 'label'."
                % self.kind.value
            )

    def command_fields(self):
        fields = {
            'action': self.kind.value,
            'identifier': self.identifier,
            'label': self.label,
            'timeout': self.timeout,
        }
        fields.update(self.specific_command_fields())
        return {
            field_name: value
            for field_name, value in fields.items()
            if value is not None
        }

    def specific_command_fields(self):
        return {}


class ClickAction(Action):
    kind = ActionKind.CLICK


class TypeAction(Action):
    kind = ActionKind.TYPE
    argument_names = Action.argument_names + ('text', 'clear_first')

    def __init__(self, text=None, clear_first=False, **target_arguments):
        super().__init__(**target_arguments)
        if not isinstance(text, str):
            raise InvalidParameters("type action requires 'text'.")
        if not isinstance(clear_first, bool):
            raise InvalidParameters('clear_first must be a boolean.')
        self.text = text
        self.clear_first = clear_first

    def specific_command_fields(self):
        return {
            'text': self.text,
            'clearFirst': self.clear_first or None,
        }


class SwipeAction(Action):
    kind = ActionKind.SWIPE
    argument_names = Action.argument_names + ('direction',)

    def __init__(self, direction=None, **target_arguments):
        super().__init__(**target_arguments)
        if direction is None:
            raise InvalidParameters("swipe action requires 'direction'.")
        if direction not in SWIPE_DIRECTIONS:
            raise InvalidParameters(
                "Invalid direction '%s'. Must be up, down, left, or right."
                % direction
            )
        self.direction = direction

    def specific_command_fields(self):
        return {'direction': self.direction}


class LongPressAction(Action):
    kind = ActionKind.LONG_PRESS
    argument_names = Action.argument_names + ('duration',)

    def __init__(self, duration=None, **target_arguments):
        super().__init__(**target_arguments)
        self.duration = optional_positive_number(duration, 'duration')

    def specific_command_fields(self):
        return {'duration': self.duration}


class QueryAction(Action):
    kind = ActionKind.QUERY
    requires_target = False
    argument_names = ('timeout', 'role', 'depth')

    def __init__(self, role=None, depth=None, timeout=None):
        super().__init__(timeout=timeout)
        self.role = optional_string(role, 'role')
        if depth is not None and (
            isinstance(depth, bool) or not isinstance(depth, int) or depth < 1
        ):
            raise InvalidParameters('depth must be a positive integer.')
        self.depth = depth

    def specific_command_fields(self):
        return {
            'queryRole': self.role,
            'queryDepth': self.depth,
        }


ACTION_CLASSES = {
    action_class.kind: action_class
    for action_class in (
        ClickAction,
        TypeAction,
        SwipeAction,
        LongPressAction,
        QueryAction,
    )
}


def action_from_arguments(arguments):
    if not isinstance(arguments, dict):
        raise InvalidParameters('Each action must be an object.')
    action_name = arguments.get('action')
    if not isinstance(action_name, str):
        raise InvalidParameters("Action is missing the required 'action' field.")
    action_class = ACTION_CLASSES[ActionKind.named(action_name)]
    action_arguments = {}
    for argument_name, value in arguments.items():
        if argument_name == 'action' or value is None:
            continue
        normalised_name = ARGUMENT_ALIASES.get(argument_name, argument_name)
        if normalised_name not in action_class.argument_names:
            raise InvalidParameters(
                "'%s' is not valid for %s actions." % (argument_name, action_name)
            )
        action_arguments[normalised_name] = value
    return action_class(**action_arguments)


class SingleActionRequest:
    def __init__(self, bundle_id, action):
        self.bundle_id = bundle_id
        self.action = action

    @property
    def action_count(self):
        return 1

    @property
    def description(self):
        return self.action.kind.value

    def validate(self):
        validated_bundle_id(self.bundle_id)
        self.action.validate()

    def command_document(self):
        document = {'bundleId': self.bundle_id}
        document.update(self.action.command_fields())
        return document

    def result_from_document(self, document):
        return ActionResult.from_document(document)

    def driver_timeout(self, configuration, is_watch=False):
        return configuration.action_timeout(self.action.kind.value, is_watch=is_watch)


class BatchRequest:
    def __init__(self, bundle_id, actions):
        self.bundle_id = bundle_id
        self.actions = list(actions)

    @property
    def action_count(self):
        return len(self.actions)

    @property
    def description(self):
        return 'batch'

    def validate(self):
        validated_bundle_id(self.bundle_id)
        if not self.actions:
            raise InvalidParameters('actions cannot be empty.')
        for index, action in enumerate(self.actions):
            try:
                action.validate()
            except InvalidParameters as error:
                raise InvalidParameters(
                    'Action at index %s: %s' % (index, error)
                ) from error

    def command_document(self):
        return {
            'bundleId': self.bundle_id,
            'commands': [action.command_fields() for action in self.actions],
        }

    def result_from_document(self, document):
        return BatchResult.from_document(document)

    def driver_timeout(self, configuration, is_watch=False):
        return configuration.batch_timeout(len(self.actions), is_watch=is_watch)


def batch_request_from_arguments(bundle_id, actions):
    if not isinstance(actions, list):
        raise InvalidParameters('actions must be a list of objects.')
    parsed_actions = []
    for index, action_arguments in enumerate(actions):
        try:
            parsed_actions.append(action_from_arguments(action_arguments))
        except UnknownAction:
            raise
        except InvalidParameters as error:
            raise InvalidParameters(
                'Action at index %s: %s' % (index, error)
            ) from error
    return BatchRequest(bundle_id, parsed_actions)


class ActionResult:
    def __init__(
        self,
        success,
        message,
        error=None,
        elements=None,
        element_type=None,
        element_frame=None,
        used_fallback_path=None,
        hint=None,
    ):
        self.success = success
        self.message = message
        self.error = error
        self.elements = elements
        self.element_type = element_type
        self.element_frame = element_frame
        self.used_fallback_path = used_fallback_path
        self.hint = hint

    @classmethod
    def failed(cls, message, error):
        return cls(False, message, error=str(error))

    @classmethod
    def from_document(cls, document):
        try:
            return cls(
                bool(document['success']),
                document['message'],
                error=document.get('error'),
                elements=document.get('elements'),
                element_type=document.get('elementType'),
                element_frame=document.get('elementFrame'),
                used_fallback_path=document.get('usedCoordinateFallback'),
                hint=document.get('hint'),
            )
        except (KeyError, TypeError, AttributeError) as error:
            raise ResultFileMalformed(
                'malformed result document (%s)' % error
            ) from error

    def as_document(self):
        document = {
            'success': self.success,
            'message': self.message,
            'error': self.error,
            'elements': self.elements,
            'elementType': self.element_type,
            'elementFrame': self.element_frame,
            'usedCoordinateFallback': self.used_fallback_path,
            'hint': self.hint,
        }
        return {
            field_name: value
            for field_name, value in document.items()
            if value is not None
        }

    def summary_text(self):
        lines = [self.message]
        if self.element_type:
            lines.append('  Element type: %s' % self.element_type)
        if self.element_frame:
            lines.append('  Position: %s' % self.element_frame)
        if self.used_fallback_path:
            lines.append(
                '  Note: Used coordinate-based tap '
                '(element was not directly hittable)'
            )
        if self.hint:
            lines.append('  Hint: %s' % self.hint)
        if self.elements:
            lines.append('')
            lines.append('Elements:')
            lines.append(json.dumps(self.elements, indent=2, sort_keys=True))
        return '\n'.join(lines)


class BatchResult:
    def __init__(self, success, message, results, error=None):
        self.success = success
        self.message = message
        self.results = list(results)
        self.error = error

    @classmethod
    def from_document(cls, document):
        try:
            return cls(
                bool(document['success']),
                document['message'],
                [
                    ActionResult.from_document(result_document)
                    for result_document in document.get('results', [])
                ],
                error=document.get('error'),
            )
        except (KeyError, TypeError, AttributeError) as error:
            raise ResultFileMalformed(
                'malformed batch result document (%s)' % error
            ) from error

    def as_document(self):
        document = {
            'success': self.success,
            'message': self.message,
            'results': [result.as_document() for result in self.results],
        }
        if self.error is not None:
            document['error'] = self.error
        return document

    def summary_text(self, actions):
        lines = [
            'Batch execution %s: %s'
            % ('completed' if self.success else 'failed', self.message),
            'Actions: %s, Results: %s' % (len(actions), len(self.results)),
            '',
        ]
        for index, action_result in enumerate(self.results):
            action_name = (
                actions[index].kind.value if index < len(actions) else 'unknown'
            )
            lines.append(
                '[%s] %s - %s'
                % (
                    index + 1,
                    action_name.upper(),
                    'SUCCESS' if action_result.success else 'FAILED',
                )
            )
            lines.append('    %s' % action_result.message)
            if action_result.error:
                lines.append('    Error: %s' % action_result.error)
            if action_result.element_type:
                lines.append('    Element type: %s' % action_result.element_type)
            if action_result.hint:
                lines.append('    Hint: %s' % action_result.hint)
        return '\n'.join(lines)


def write_json_atomically(path, document):
    directory = os.path.dirname(path) or '.'
    file_descriptor, temporary_path = tempfile.mkstemp(
        prefix='.%s.' % os.path.basename(path),
        dir=directory,
    )
    try:
        with os.fdopen(file_descriptor, 'w', encoding='utf-8') as temporary_file:
            json.dump(document, temporary_file, indent=2, sort_keys=True)
        os.replace(temporary_path, path)
    except BaseException:
        remove_if_present(temporary_path)
        raise


def remove_if_present(path):
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def optional_string(value, argument_name):
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidParameters('%s must be a string.' % argument_name)
    return value or None


def optional_positive_number(value, argument_name):
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidParameters('%s must be a number.' % argument_name)
    if value <= 0:
        raise InvalidParameters('%s must be greater than zero.' % argument_name)
    return value
