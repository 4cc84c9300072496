from reahl.tofu import Fixture
from reahl.tofu import NoException
from reahl.tofu import expected
from reahl.tofu import scenario
from reahl.tofu import with_fixtures

from listall.devtools.errors import InvalidParameters
from listall.devtools.validation import device_type_from_identifier
from listall.devtools.validation import sanitized_screenshot_context
from listall.devtools.validation import sdk_version_of_xctestrun
from listall.devtools.validation import validated_bundle_id
from listall.devtools.validation import validated_udid


def test_booted_and_uuids_are_valid_udids():
    with expected(NoException):
        validated_udid('booted')
        validated_udid('6F1C2B0A-8D7E-4C43-9A55-0D1E2F3A4B5C')


def test_all_is_only_accepted_where_allowed():
    assert validated_udid('all', allow_all=True) == 'all'

    def check_message(error):
        assert str(error) == (
            "Invalid UDID format: 'all'. Must be 'booted' or a valid UUID."
        )

    with expected(InvalidParameters, test=check_message):
        validated_udid('all')


def test_bundle_ids_must_be_dotted_without_spaces():
    assert validated_bundle_id('io.github.chmc.ListAll') == 'io.github.chmc.ListAll'
    with expected(InvalidParameters):
        validated_bundle_id('ListAll')
    with expected(InvalidParameters):
        validated_bundle_id('io.github. ListAll')


class ScreenshotContextScenarios(Fixture):
    @scenario
    def nothing_given(self):
        self.context = None
        self.expected_name = 'screenshot'

    @scenario
    def platform_prefix(self):
        self.context = 'watch-main-list'
        self.expected_name = 'main-list'

    @scenario
    def platform_suffix(self):
        self.context = 'Add Item iOS'
        self.expected_name = 'add-item-ios'

    @scenario
    def dashed_platform_suffix(self):
        self.context = 'settings-ipad'
        self.expected_name = 'settings'

    @scenario
    def only_a_platform(self):
        self.context = 'watchos'
        self.expected_name = 'screenshot'

    @scenario
    def punctuation(self):
        self.context = 'Lists/Detail (dark)!'
        self.expected_name = 'listsdetail-dark'


@with_fixtures(ScreenshotContextScenarios)
def test_screenshot_context_becomes_a_safe_file_name_part(fixture):
    assert sanitized_screenshot_context(fixture.context) == fixture.expected_name


def test_device_type_is_taken_from_the_type_identifier():
    assert device_type_from_identifier(
        'com.apple.CoreSimulator.SimDeviceType.iPhone-15-Pro'
    ) == 'iPhone'
    assert device_type_from_identifier(
        'com.apple.CoreSimulator.SimDeviceType.Apple-Watch-Ultra-2-49mm'
    ) == 'Apple Watch'
    assert device_type_from_identifier(None) == 'Unknown'


def test_sdk_version_is_read_from_the_xctestrun_name():
    assert sdk_version_of_xctestrun(
        '/DerivedData/Build/Products/ListAll_iphonesimulator17.2-arm64.xctestrun'
    ) == '17.2'
    assert sdk_version_of_xctestrun('/tmp/ListAll.xctestrun') is None
