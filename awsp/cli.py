"""
Command-line interface for awsp.
"""

import argparse
import sys

import inquirer
from inquirer.errors import ValidationError

from . import __version__
from .core import (
    AWS_SETUP_GUIDE_URL,
    DEFAULT_SOURCE_PROFILE,
    MFA_CODE_LENGTH,
    AssumeRoleFailed,
    AwspError,
    NoProfilesFound,
    RoleLookupFailed,
    assume_role,
    assume_role_for_profile,
    clear_stale_credentials,
    copy_to_clipboard,
    format_clipboard_text,
    format_export_lines,
    format_profile_exports,
    get_active_profile,
    get_aws_config_path,
    get_credentials_file_path,
    get_profile_config_value,
    get_profile_file_path,
    get_region,
    has_role_configuration,
    is_role_arn,
    list_profiles,
    load_credentials_file,
    read_aws_config_text,
    render_exports,
    role_name_from_arn,
    session_name_for,
    validate_mfa_code,
    write_credentials_file,
    write_profile_file,
)
from .shell import DEFAULT_FUNCTION_NAME, render_shell_function


def print_no_profiles_guidance(out=None):
    out = out or sys.stdout
    print("No profiles found.", file=out)
    print("Refer to this guide for help on setting up a new AWS profile:", file=out)
    print(AWS_SETUP_GUIDE_URL, file=out)


def prompt_profile_choice(profiles, default):
    """
    Ask the user to pick one profile.

    Returns:
        str: The chosen profile, or None if the prompt was cancelled
    """
    questions = [
        inquirer.List(
            "profile",
            message="Choose a profile",
            choices=profiles,
            default=default,
        )
    ]
    answers = inquirer.prompt(questions)
    if not answers:
        return None
    return answers["profile"]


def _validate_mfa_answer(answers, current):
    if not validate_mfa_code(current):
        raise ValidationError(
            current, reason=f"Please enter a valid {MFA_CODE_LENGTH}-digit MFA code"
        )
    return True


def prompt_mfa_code():
    """
    Ask for an MFA code; inquirer re-prompts until _validate_mfa_answer passes.

    Returns:
        str: Six-digit code, or None if the prompt was cancelled
    """
    questions = [
        inquirer.Text("mfa_code", message="Enter MFA code", validate=_validate_mfa_answer)
    ]
    answers = inquirer.prompt(questions)
    if not answers:
        return None
    return answers["mfa_code"]


def report_assumed_role(target, clipboard_ok, expiration=None, out=None):
    out = out or sys.stdout
    message = f"Successfully assumed role for profile: {target}"
    if expiration:
        message += f" (valid until {expiration})"
    if not clipboard_ok:
        message += " (clipboard copy failed)"
    print(message, file=out)


def run_interactive(args):
    """Pick a profile, assume its role if it has MFA role config, and leave hand-off files."""
    print("AWS Profile Switcher")

    if clear_stale_credentials(args.credentials_file):
        print(f"Removed stale credentials file: {args.credentials_file}", file=sys.stderr)

    try:
        config_text = read_aws_config_text(get_aws_config_path())
        profiles = list_profiles(config_text)
    except NoProfilesFound:
        print_no_profiles_guidance()
        return 0
    except AwspError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    profile = prompt_profile_choice(profiles, get_active_profile(profiles))
    if profile is None:
        return 0

    write_profile_file(args.profile_file, profile)

    if not has_role_configuration(profile):
        return 0

    mfa_code = prompt_mfa_code()
    if mfa_code is None:
        print("MFA authentication cancelled", file=sys.stderr)
        return 1

    try:
        credentials = assume_role_for_profile(profile, mfa_code)
    except AssumeRoleFailed as e:
        print(f"Error assuming role: {e}", file=sys.stderr)
        return 1

    write_credentials_file(
        args.credentials_file, format_export_lines(credentials, profile, args.region)
    )
    clipboard_ok = copy_to_clipboard(format_clipboard_text(credentials, args.region))
    report_assumed_role(profile, clipboard_ok, credentials.get("Expiration"))
    return 0


def run_assume_arn(args):
    """Assume a role given by ARN and print exports for eval."""
    role_arn = args.target
    source_profile = args.source_profile or DEFAULT_SOURCE_PROFILE

    mfa_serial = None
    if args.mfa_code:
        try:
            mfa_serial = get_profile_config_value(source_profile, "mfa_serial")
        except RoleLookupFailed as e:
            print(f"Error assuming role: {e}", file=sys.stderr)
            return 1

    try:
        credentials = assume_role(
            role_arn,
            session_name_for(role_name_from_arn(role_arn)),
            source_profile=source_profile,
            mfa_serial=mfa_serial,
            mfa_code=args.mfa_code,
        )
    except AssumeRoleFailed as e:
        print(f"Error assuming role: {e}", file=sys.stderr)
        return 1

    clipboard_ok = copy_to_clipboard(format_clipboard_text(credentials, args.region))
    report_assumed_role(role_arn, clipboard_ok, credentials.get("Expiration"), out=sys.stderr)
    sys.stdout.write(format_export_lines(credentials, source_profile, args.region))
    return 0


def run_assume_profile(args):
    """Assume a profile's role with the MFA code from -m and print exports for eval."""
    profile = args.target
    try:
        credentials = assume_role_for_profile(profile, args.mfa_code)
    except AssumeRoleFailed as e:
        print(f"Error assuming role: {e}", file=sys.stderr)
        return 1

    clipboard_ok = copy_to_clipboard(format_clipboard_text(credentials, args.region))
    report_assumed_role(profile, clipboard_ok, credentials.get("Expiration"), out=sys.stderr)
    sys.stdout.write(format_export_lines(credentials, profile, args.region))
    return 0


def run_set_profile(args):
    sys.stdout.write(format_profile_exports(args.target))
    print(f"set profile: {args.target}", file=sys.stderr)
    return 0


def run_load_credentials(args):
    """Print the hand-off file's exports for eval and delete the file."""
    try:
        values = load_credentials_file(args.load_credentials)
    except AwspError as e:
        print(f"Error: Refusing to load {args.load_credentials}: {e}", file=sys.stderr)
        return 1

    if values:
        sys.stdout.write(render_exports(values))
    return 0


def run_list(args):
    try:
        profiles = list_profiles(read_aws_config_text(get_aws_config_path()))
    except NoProfilesFound:
        print_no_profiles_guidance(out=sys.stderr)
        return 0
    except AwspError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    for profile in profiles:
        print(profile)
    return 0


def build_parser():
    parser = argparse.ArgumentParser(
        prog="awsp-switch",
        description="Switch AWS profiles and assume MFA-protected roles into the current shell",
        epilog="Examples:\n"
        "  eval \"$(awsp-switch --shell-init)\"                       # Install the awsp shell function\n"
        "  awsp                                                     # Pick a profile interactively\n"
        "  awsp staging                                             # Switch to profile 'staging'\n"
        "  awsp -m 123456 prod-admin                                # Assume prod-admin's role with MFA\n"
        "  awsp -p ops -m 123456 arn:aws:iam::123456789012:role/Ops # Assume a role by ARN",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-m",
        "--mfa-code",
        metavar="CODE",
        default=None,
        help=f"{MFA_CODE_LENGTH}-digit MFA code; assumes the profile's role (or the ARN) without prompting",
    )
    parser.add_argument(
        "-p",
        "--source-profile",
        metavar="PROFILE",
        default=None,
        help=f"Profile used to call AssumeRole when TARGET is a role ARN (default: {DEFAULT_SOURCE_PROFILE})",
    )
    parser.add_argument(
        "--region",
        default=get_region(),
        help="Region exported with assumed credentials (default: $AWSP_REGION or %(default)s)",
    )
    parser.add_argument(
        "--profile-file",
        metavar="PATH",
        default=get_profile_file_path(),
        help="Where interactive mode records the selected profile (default: %(default)s)",
    )
    parser.add_argument(
        "--credentials-file",
        metavar="PATH",
        default=get_credentials_file_path(),
        help="Where interactive mode writes assumed credentials (default: %(default)s)",
    )
    parser.add_argument(
        "--load-credentials",
        metavar="PATH",
        default=None,
        help="Print the export statements from a credentials file, then delete it",
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List profile names from the AWS config file",
    )
    parser.add_argument(
        "--shell-init",
        metavar="NAME",
        nargs="?",
        const=DEFAULT_FUNCTION_NAME,
        default=None,
        help=f"Print the shell function to eval in your shell rc file (function name defaults to '{DEFAULT_FUNCTION_NAME}')",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "target",
        nargs="?",
        default=None,
        help="Profile name or role ARN (arn:aws:iam::<account>:role/<name>). "
        "If omitted, choose a profile interactively.",
    )
    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.mfa_code is not None and not validate_mfa_code(args.mfa_code):
        parser.error(f"-m/--mfa-code must be exactly {MFA_CODE_LENGTH} digits")
    if args.source_profile is not None and not is_role_arn(args.target):
        parser.error("-p/--source-profile is only valid when TARGET is a role ARN")

    if args.shell_init is not None:
        try:
            sys.stdout.write(render_shell_function(args.shell_init))
        except ValueError as e:
            parser.error(str(e))
        return 0

    if args.load_credentials:
        return run_load_credentials(args)

    if args.list:
        return run_list(args)

    if args.target is None:
        if args.mfa_code is not None:
            parser.error("-m/--mfa-code requires a profile name or role ARN")
        return run_interactive(args)

    if is_role_arn(args.target):
        return run_assume_arn(args)

    if args.mfa_code:
        return run_assume_profile(args)

    return run_set_profile(args)


if __name__ == "__main__":
    sys.exit(main())
