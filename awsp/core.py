"""
Core profile discovery, role assumption and credential hand-off functions for awsp.
"""

import os
import re
import shlex
from pathlib import Path

import boto3
import pyperclip
from botocore.exceptions import BotoCoreError, ClientError
from botocore.session import Session as BotocoreSession

DEFAULT_PROFILE = "default"
DEFAULT_SOURCE_PROFILE = "default"
DEFAULT_REGION = "ap-northeast-1"
MFA_CODE_LENGTH = 6

AWS_SETUP_GUIDE_URL = "https://docs.aws.amazon.com/cli/latest/userguide/cli-chap-getting-started.html"

PROFILE_HEADING_RE = re.compile(r"^[ \t]*\[profile[ \t]+([^\]\r\n]+?)[ \t]*\]", re.MULTILINE)
ROLE_ARN_RE = re.compile(r"arn:aws(?:-[a-z]+)*:iam::[0-9]{12}:role/[\w+=,.@/-]+")
MFA_CODE_RE = re.compile(r"[0-9]{%d}" % MFA_CODE_LENGTH)
SESSION_NAME_INVALID_CHARS_RE = re.compile(r"[^\w+=,.@-]")

# Order matters: this is the order of the export lines in the hand-off file
EXPORTED_VARIABLES = (
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "AWS_REGION",
    "AWS_SESSION_TOKEN",
    "AWS_PROFILE",
    "AWS_DEFAULT_PROFILE",
)
CREDENTIAL_VARIABLES = ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_SESSION_TOKEN")
# Left over from an assumed role; cleared by a plain profile switch
SWITCH_UNSET_VARIABLES = CREDENTIAL_VARIABLES + ("AWS_REGION",)


class AwspError(Exception):
    """Base class for awsp errors."""


class NoProfilesFound(AwspError):
    """The AWS config file declares no [profile ...] sections."""


class RoleLookupFailed(AwspError):
    """A role_arn or mfa_serial value could not be read for a profile."""


class AssumeRoleFailed(AwspError):
    """STS AssumeRole did not return usable credentials."""


def get_aws_config_path():
    """Get the AWS config file path."""
    return os.environ.get("AWS_CONFIG_FILE") or os.path.expanduser("~/.aws/config")


def get_profile_file_path():
    """Get the default path of the selected-profile hand-off file."""
    return os.path.expanduser("~/.awsp")


def get_credentials_file_path():
    """Get the default path of the credentials hand-off file."""
    return os.path.expanduser("~/.awsp-credentials")


def get_region():
    """Region exported with assumed credentials (AWSP_REGION overrides the default)."""
    return os.environ.get("AWSP_REGION") or DEFAULT_REGION


def read_aws_config_text(config_file):
    """
    Read the raw text of the AWS config file.

    Args:
        config_file: Path to config file

    Returns:
        str: File contents

    Raises:
        NoProfilesFound: If the file does not exist
        AwspError: If the file cannot be read or is not UTF-8 text
    """
    if not os.path.exists(config_file):
        raise NoProfilesFound(f"AWS config file not found at {config_file}")
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise AwspError(f"Could not read AWS config file {config_file}: {e}")


def list_profiles(config_text):
    """
    Extract profile names from AWS config file text.

    Every [profile NAME] heading is returned in file order, followed by
    "default". Duplicates are dropped.

    Args:
        config_text: Raw text of an AWS config file

    Returns:
        list: Profile names

    Raises:
        NoProfilesFound: If there are no [profile ...] headings
    """
    names = PROFILE_HEADING_RE.findall(config_text)
    if not names:
        raise NoProfilesFound("No profiles found.")

    profiles = []
    for name in names + [DEFAULT_PROFILE]:
        if name not in profiles:
            profiles.append(name)
    return profiles


def get_active_profile(choices=None):
    """
    Get the currently active profile name.

    AWS_DEFAULT_PROFILE wins over AWS_PROFILE; "default" is the fallback.
    If choices are given and the active profile is not among them, "default"
    is returned.
    """
    active = (
        os.environ.get("AWS_DEFAULT_PROFILE") or os.environ.get("AWS_PROFILE") or DEFAULT_PROFILE
    )
    if choices is not None and active not in choices:
        return DEFAULT_PROFILE
    return active


def get_profile_config_value(profile_name, key):
    """
    Read a single value from the AWS configuration store for a profile.

    Equivalent to `aws configure get <profile>.<key>`: botocore's scoped config
    merges the config file and the shared credentials file.

    Args:
        profile_name: AWS profile name
        key: Configuration key, e.g. "role_arn"

    Returns:
        str: The configured value

    Raises:
        RoleLookupFailed: If the profile is missing or the value is empty
    """
    try:
        session = BotocoreSession(profile=profile_name)
        value = session.get_scoped_config().get(key)
    except BotoCoreError as e:
        raise RoleLookupFailed(f"Could not read {key} for profile '{profile_name}': {e}")

    if not value or not str(value).strip():
        raise RoleLookupFailed(f"{key} is not configured for profile '{profile_name}'")
    return str(value).strip()


def get_role_configuration(profile_name):
    """Return (role_arn, mfa_serial) for a profile."""
    role_arn = get_profile_config_value(profile_name, "role_arn")
    mfa_serial = get_profile_config_value(profile_name, "mfa_serial")
    return role_arn, mfa_serial


def has_role_configuration(profile_name):
    """
    Check if a profile is configured for AssumeRole with MFA.

    Returns:
        bool: True only if both role_arn and mfa_serial are set
    """
    try:
        get_role_configuration(profile_name)
    except RoleLookupFailed:
        return False
    return True


def validate_mfa_code(value):
    """Return True if value is exactly six ASCII digits."""
    if not isinstance(value, str):
        return False
    return MFA_CODE_RE.fullmatch(value) is not None


def is_role_arn(value):
    """Return True if value looks like an IAM role ARN."""
    if not isinstance(value, str):
        return False
    return ROLE_ARN_RE.fullmatch(value) is not None


def role_name_from_arn(role_arn):
    """arn:aws:iam::123456789012:role/path/MyRole -> MyRole"""
    return role_arn.rsplit("/", 1)[-1]


def session_name_for(name):
    """
    Build an STS role session name from a profile or role name.

    Characters outside [\\w+=,.@-] are replaced and the result is capped at
    the 64 characters STS allows.
    """
    session_name = SESSION_NAME_INVALID_CHARS_RE.sub("-", f"{name}-session")
    return session_name[:64]


def assume_role(
    role_arn,
    session_name,
    source_profile=DEFAULT_SOURCE_PROFILE,
    mfa_serial=None,
    mfa_code=None,
):
    """
    Call STS AssumeRole using a source profile as the calling identity.

    Args:
        role_arn: ARN of the role to assume
        session_name: Role session name
        source_profile: Profile whose credentials make the call
        mfa_serial: MFA device serial/ARN (sent only together with mfa_code)
        mfa_code: Current MFA token code

    Returns:
        dict with AccessKeyId, SecretAccessKey, SessionToken (and Expiration if present)

    Raises:
        AssumeRoleFailed: On any AWS error or malformed response
    """
    params = {"RoleArn": role_arn, "RoleSessionName": session_name}
    if mfa_serial and mfa_code:
        params["SerialNumber"] = mfa_serial
        params["TokenCode"] = mfa_code

    try:
        session = boto3.Session(profile_name=source_profile)
        sts_client = session.client("sts", region_name=session.region_name or get_region())
        response = sts_client.assume_role(**params)
    except ClientError as e:
        error_msg = e.response.get("Error", {}).get("Message", str(e))
        raise AssumeRoleFailed(error_msg)
    except BotoCoreError as e:
        raise AssumeRoleFailed(str(e))

    try:
        response_credentials = response["Credentials"]
        credentials = {
            "AccessKeyId": response_credentials["AccessKeyId"],
            "SecretAccessKey": response_credentials["SecretAccessKey"],
            "SessionToken": response_credentials["SessionToken"],
        }
    except (KeyError, TypeError) as e:
        raise AssumeRoleFailed(f"Malformed AssumeRole response (missing {e})")

    expiration = response_credentials.get("Expiration")
    if expiration is not None:
        credentials["Expiration"] = (
            expiration.isoformat() if hasattr(expiration, "isoformat") else str(expiration)
        )
    return credentials


def assume_role_for_profile(profile_name, mfa_code, source_profile=DEFAULT_SOURCE_PROFILE):
    """
    Assume the role configured for a profile, authenticating with MFA.

    role_arn and mfa_serial are looked up again here, independently of
    has_role_configuration().

    Raises:
        AssumeRoleFailed: If the profile has no role config or STS rejects the call
    """
    try:
        role_arn, mfa_serial = get_role_configuration(profile_name)
    except RoleLookupFailed as e:
        raise AssumeRoleFailed(str(e))

    return assume_role(
        role_arn,
        session_name_for(profile_name),
        source_profile=source_profile,
        mfa_serial=mfa_serial,
        mfa_code=mfa_code,
    )


def format_export_lines(credentials, profile_name, region=DEFAULT_REGION):
    """
    Render assumed credentials as shell export statements.

    Returns:
        str: Six newline-terminated `export NAME=value` lines
    """
    values = {
        "AWS_ACCESS_KEY_ID": credentials["AccessKeyId"],
        "AWS_SECRET_ACCESS_KEY": credentials["SecretAccessKey"],
        "AWS_REGION": region,
        "AWS_SESSION_TOKEN": credentials["SessionToken"],
        "AWS_PROFILE": profile_name,
        "AWS_DEFAULT_PROFILE": profile_name,
    }
    return render_exports(values)


def render_exports(values):
    """Render a mapping of known variables as export lines, in hand-off order."""
    lines = [
        f"export {name}={shlex.quote(values[name])}"
        for name in EXPORTED_VARIABLES
        if name in values
    ]
    return "".join(f"{line}\n" for line in lines)


def format_profile_exports(profile_name):
    """
    Shell statements for a plain profile switch.

    Exported credentials are unset first, since they would otherwise take
    precedence over AWS_PROFILE. The exported region goes too, so the new
    profile's configured region applies.
    """
    quoted = shlex.quote(profile_name)
    return (
        f"unset {' '.join(SWITCH_UNSET_VARIABLES)}\n"
        f"export AWS_PROFILE={quoted}\n"
        f"export AWS_DEFAULT_PROFILE={quoted}\n"
    )


def format_clipboard_text(credentials, region=DEFAULT_REGION):
    """Four KEY=value lines for pasting into .env files and consoles."""
    return (
        f"AWS_ACCESS_KEY_ID={credentials['AccessKeyId']}\n"
        f"AWS_SECRET_ACCESS_KEY={credentials['SecretAccessKey']}\n"
        f"AWS_REGION={region}\n"
        f"AWS_SESSION_TOKEN={credentials['SessionToken']}"
    )


def copy_to_clipboard(text):
    """
    Copy text to the system clipboard.

    Returns:
        bool: False if no clipboard mechanism is available
    """
    try:
        pyperclip.copy(text)
    except pyperclip.PyperclipException:
        return False
    return True


def write_credentials_file(creds_file, content):
    """Write the credentials hand-off file with secure permissions."""
    Path(creds_file).parent.mkdir(parents=True, exist_ok=True)

    # Create with 0600 up front so the secrets are never world-readable
    fd = os.open(creds_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as f:
        f.write(content)


def write_profile_file(profile_file, profile_name):
    """Record the selected profile name for the calling shell."""
    Path(profile_file).parent.mkdir(parents=True, exist_ok=True)
    with open(profile_file, "w") as f:
        f.write(profile_name)


def clear_stale_credentials(creds_file):
    """
    Remove a credentials hand-off file left behind by an earlier run.

    Returns:
        bool: True if a file was removed
    """
    try:
        os.remove(creds_file)
    except FileNotFoundError:
        return False
    return True


def parse_export_lines(text):
    """
    Parse `export NAME=value` lines into a dict.

    Only the variables awsp itself writes are accepted, since the result is
    evaluated by the calling shell.

    Raises:
        AwspError: On any other statement
    """
    values = {}
    for lineno, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            tokens = shlex.split(line)
        except ValueError as e:
            raise AwspError(f"line {lineno}: {e}")

        if len(tokens) != 2 or tokens[0] != "export" or "=" not in tokens[1]:
            raise AwspError(f"line {lineno}: not an export statement")

        name, value = tokens[1].split("=", 1)
        if name not in EXPORTED_VARIABLES:
            raise AwspError(f"line {lineno}: unexpected variable {name}")
        values[name] = value
    return values


def load_credentials_file(creds_file):
    """
    Consume the credentials hand-off file.

    The file is parsed, then deleted whether or not parsing succeeded.

    Returns:
        dict of exported variables, or None if the file does not exist

    Raises:
        AwspError: If the file contains anything but known export lines
    """
    try:
        with open(creds_file, "r") as f:
            content = f.read()
    except FileNotFoundError:
        return None

    try:
        return parse_export_lines(content)
    finally:
        os.remove(creds_file)
