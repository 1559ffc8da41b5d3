"""
awsp: AWS profile switcher with MFA AssumeRole support.

Pick an AWS profile interactively (or name it on the command line) and export
it into the current shell. Profiles configured with role_arn and mfa_serial
are exchanged for temporary STS credentials using an MFA code.

Key features:
- Interactive profile picker over ~/.aws/config
- AssumeRole with MFA for role profiles, or directly by role ARN
- Temporary credentials exported into the calling shell and copied to the clipboard
- Shell function installed with: eval "$(awsp-switch --shell-init)"
"""

__version__ = "0.1.0"
__license__ = "MIT"

from .core import (
    AssumeRoleFailed,
    AwspError,
    NoProfilesFound,
    RoleLookupFailed,
    assume_role,
    assume_role_for_profile,
    format_export_lines,
    has_role_configuration,
    list_profiles,
    load_credentials_file,
    validate_mfa_code,
)

__all__ = [
    # Profile discovery
    "list_profiles",
    "has_role_configuration",
    "validate_mfa_code",
    # Role assumption
    "assume_role",
    "assume_role_for_profile",
    # Credential hand-off
    "format_export_lines",
    "load_credentials_file",
    # Errors
    "AwspError",
    "NoProfilesFound",
    "RoleLookupFailed",
    "AssumeRoleFailed",
]
