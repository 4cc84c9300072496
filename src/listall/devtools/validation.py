import re
import uuid

from listall.devtools.errors import InvalidParameters


PLATFORM_NAMES = ('macos', 'ios', 'iphone', 'ipad', 'watch', 'watchos')


def validated_udid(udid, allow_all=False):
    if not isinstance(udid, str):
        raise InvalidParameters('udid must be a string.')
    if udid == 'booted' or (allow_all and udid == 'all'):
        return udid
    try:
        uuid.UUID(udid)
    except ValueError:
        accepted = "'all', 'booted'" if allow_all else "'booted'"
        raise InvalidParameters(
            "Invalid UDID format: '%s'. Must be %s or a valid UUID."
            % (udid, accepted)
        )
    return udid


def validated_bundle_id(bundle_id):
    if not isinstance(bundle_id, str):
        raise InvalidParameters('bundle_id must be a string.')
    if '.' not in bundle_id:
        raise InvalidParameters(
            "Invalid bundle ID format: '%s'. Must be in reverse domain "
            "notation (e.g., 'com.example.app')." % bundle_id
        )
    if re.search(r'\s', bundle_id):
        raise InvalidParameters(
            "Invalid bundle ID format: '%s'. Bundle ID cannot contain spaces."
            % bundle_id
        )
    return bundle_id


def device_type_from_identifier(device_type_identifier):
    if not device_type_identifier:
        return 'Unknown'
    for marker, device_type in (
        ('iPhone', 'iPhone'),
        ('iPad', 'iPad'),
        ('Watch', 'Apple Watch'),
        ('TV', 'Apple TV'),
        ('Vision', 'Apple Vision'),
    ):
        if marker in device_type_identifier:
            return device_type
    return 'Unknown'


def sanitized_screenshot_context(context):
    if not context:
        return 'screenshot'
    cleaned = context.lower()
    stripped = True
    while stripped:
        stripped = False
        for platform_name in PLATFORM_NAMES:
            if cleaned.startswith('%s-' % platform_name):
                cleaned = cleaned[len(platform_name) + 1:]
                stripped = True
                break
    stripped = True
    while stripped:
        stripped = False
        for platform_name in PLATFORM_NAMES:
            if cleaned.endswith('-%s' % platform_name):
                cleaned = cleaned[:-(len(platform_name) + 1)]
                stripped = True
                break
    cleaned = re.sub(r'[^a-z0-9-]', '', cleaned.replace(' ', '-'))
    if not cleaned or cleaned in PLATFORM_NAMES:
        return 'screenshot'
    return cleaned


def sdk_version_of_xctestrun(xctestrun_path):
    file_name = xctestrun_path.rsplit('/', 1)[-1]
    match = re.search(r'_(?:iphone|watch)simulator(\d+\.\d+)-', file_name)
    if match is None:
        return None
    return match.group(1)
