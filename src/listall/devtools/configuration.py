import glob
import os
import shlex


DEFAULT_ACTION_TIMEOUTS = {
    'click': 60.0,
    'type': 75.0,
    'swipe': 60.0,
    'longPress': 60.0,
    'query': 90.0,
}


class DevToolsConfiguration:
    def __init__(
        self,
        derived_data_path='~/Library/Developer/Xcode/DerivedData',
        project_name='ListAll',
        project_path='ListAll/ListAll.xcodeproj',
        index_store_path=None,
        libindexstore_path=None,
        xcodebuild_path='/usr/bin/xcodebuild',
        xcrun_path='/usr/bin/xcrun',
        osascript_path='/usr/bin/osascript',
        driver_command=None,
        command_path='/tmp/listall_mcp_command.json',
        result_path='/tmp/listall_mcp_result.json',
        watch_command_path='/tmp/listall_mcp_watch_command.json',
        watch_result_path='/tmp/listall_mcp_watch_result.json',
        screenshot_directory='/tmp/listall_mcp_screenshots',
        default_timeout=120.0,
        simctl_timeout=30.0,
        termination_grace_period=2.0,
        action_timeouts=None,
        default_action_timeout=90.0,
        batch_startup_timeout=60.0,
        batch_timeout_per_action=30.0,
        minimum_build_timeout=300.0,
        watch_timeout_factor=1.5,
        watch_max_batch_size=5,
        snippet_size_limit=1024 * 1024,
        name_based_result_limit=100,
        search_result_limit=50,
        dump_result_limit=50,
        suggestion_limit=10,
    ):
        self.derived_data_path = derived_data_path
        self.project_name = project_name
        self.project_path = project_path
        self.index_store_path = index_store_path
        self.libindexstore_path = libindexstore_path
        self.xcodebuild_path = xcodebuild_path
        self.xcrun_path = xcrun_path
        self.osascript_path = osascript_path
        self.driver_command = list(driver_command) if driver_command else None
        self.command_path = command_path
        self.result_path = result_path
        self.watch_command_path = watch_command_path
        self.watch_result_path = watch_result_path
        self.screenshot_directory = screenshot_directory
        self.default_timeout = default_timeout
        self.simctl_timeout = simctl_timeout
        self.termination_grace_period = termination_grace_period
        self.action_timeouts = dict(DEFAULT_ACTION_TIMEOUTS)
        self.action_timeouts.update(action_timeouts or {})
        self.default_action_timeout = default_action_timeout
        self.batch_startup_timeout = batch_startup_timeout
        self.batch_timeout_per_action = batch_timeout_per_action
        self.minimum_build_timeout = minimum_build_timeout
        self.watch_timeout_factor = watch_timeout_factor
        self.watch_max_batch_size = watch_max_batch_size
        self.snippet_size_limit = snippet_size_limit
        self.name_based_result_limit = name_based_result_limit
        self.search_result_limit = search_result_limit
        self.dump_result_limit = dump_result_limit
        self.suggestion_limit = suggestion_limit

    @classmethod
    def from_environment(cls, environ=None, **overrides):
        environ = os.environ if environ is None else environ
        settings = {}
        text_settings = {
            'LISTALL_MCP_DERIVED_DATA': 'derived_data_path',
            'LISTALL_MCP_PROJECT_NAME': 'project_name',
            'LISTALL_MCP_PROJECT': 'project_path',
            'LISTALL_MCP_INDEX_STORE': 'index_store_path',
            'LISTALL_MCP_LIBINDEXSTORE': 'libindexstore_path',
            'LISTALL_MCP_XCODEBUILD': 'xcodebuild_path',
            'LISTALL_MCP_XCRUN': 'xcrun_path',
            'LISTALL_MCP_SCREENSHOTS': 'screenshot_directory',
        }
        for variable_name, setting_name in text_settings.items():
            value = environ.get(variable_name, '').strip()
            if value:
                settings[setting_name] = value
        number_settings = {
            'LISTALL_MCP_DEFAULT_TIMEOUT': 'default_timeout',
            'LISTALL_MCP_SIMCTL_TIMEOUT': 'simctl_timeout',
            'LISTALL_MCP_GRACE_PERIOD': 'termination_grace_period',
        }
        for variable_name, setting_name in number_settings.items():
            value = environ.get(variable_name, '').strip()
            if value:
                try:
                    settings[setting_name] = float(value)
                except ValueError as error:
                    raise ValueError(
                        '%s must be a number of seconds.' % variable_name
                    ) from error
        driver_command = environ.get('LISTALL_MCP_DRIVER_COMMAND', '').strip()
        if driver_command:
            settings['driver_command'] = shlex.split(driver_command)
        settings.update(
            {
                setting_name: value
                for setting_name, value in overrides.items()
                if value is not None
            }
        )
        return cls(**settings)

    def derived_data_directory(self):
        return os.path.expanduser(self.derived_data_path)

    def project_derived_data_directories(self):
        return sorted(
            glob.glob(
                os.path.join(
                    glob.escape(self.derived_data_directory()),
                    '%s-*' % glob.escape(self.project_name),
                )
            )
        )

    def product_directories(self, sdk_pattern):
        product_directories = []
        for project_directory in self.project_derived_data_directories():
            products_path = os.path.join(project_directory, 'Build', 'Products')
            if not os.path.isdir(products_path):
                continue
            for entry_name in sorted(os.listdir(products_path)):
                entry_path = os.path.join(products_path, entry_name)
                if sdk_pattern in entry_name and os.path.isdir(entry_path):
                    product_directories.append(entry_path)
        return product_directories

    def expected_index_store_location(self):
        return os.path.join(
            self.derived_data_directory(),
            '%s-*' % self.project_name,
            'Index.noindex',
            'DataStore',
        )

    def action_timeout(self, action_name, is_watch=False):
        timeout = self.action_timeouts.get(action_name, self.default_action_timeout)
        if is_watch:
            return timeout * self.watch_timeout_factor
        return timeout

    def batch_timeout(self, action_count, is_watch=False):
        timeout = (
            self.batch_startup_timeout
            + self.batch_timeout_per_action * action_count
        )
        if is_watch:
            return timeout * self.watch_timeout_factor
        return timeout

    def build_timeout(self, timeout):
        return max(self.minimum_build_timeout, timeout * 2)

    def command_file_paths(self, is_watch=False):
        if is_watch:
            return self.watch_command_path, self.watch_result_path
        return self.command_path, self.result_path
