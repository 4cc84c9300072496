import argparse
import logging
import os
import shlex
import sys

from listall.devtools.configuration import DevToolsConfiguration
from listall.devtools.mcp.server import create_server


LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR']


def configure_logging(log_level):
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, log_level),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )


def run_application(arguments=None, environ=None):
    environ = os.environ if environ is None else environ
    parser = argparse.ArgumentParser(
        description='Run ListAllMCP server.'
    )
    parser.add_argument(
        '--transport',
        default='stdio',
        choices=['stdio'],
        help='MCP transport type.',
    )
    parser.add_argument(
        '--derived-data',
        help='Xcode DerivedData directory (default ~/Library/Developer/Xcode/DerivedData).',
    )
    parser.add_argument(
        '--project',
        help='Path of the Xcode project used for build-for-testing.',
    )
    parser.add_argument(
        '--index-store',
        help='Index store directory or JSON index snapshot to query.',
    )
    parser.add_argument(
        '--driver-command',
        help=(
            'Command line run instead of xcodebuild to execute UI commands '
            '(for example: listall-mcp-driver --backend module:factory).'
        ),
    )
    parser.add_argument(
        '--log-level',
        type=str.upper,
        choices=LOG_LEVELS,
        default=environ.get('LISTALL_MCP_LOG_LEVEL', 'WARNING').upper(),
        help='Logging level for stderr output (default WARNING).',
    )
    arguments = parser.parse_args(arguments)
    if arguments.log_level not in LOG_LEVELS:
        parser.error(
            'LISTALL_MCP_LOG_LEVEL must be one of %s.' % ', '.join(LOG_LEVELS)
        )
    configure_logging(arguments.log_level)
    try:
        configuration = DevToolsConfiguration.from_environment(
            environ,
            derived_data_path=arguments.derived_data,
            project_path=arguments.project,
            index_store_path=arguments.index_store,
            driver_command=(
                shlex.split(arguments.driver_command)
                if arguments.driver_command
                else None
            ),
        )
    except ValueError as error:
        parser.error(str(error))
    mcp_server = create_server(configuration=configuration)
    mcp_server.run(transport=arguments.transport)


if __name__ == '__main__':
    run_application()
