"""
Shell function that lets awsp change the calling shell's environment.

A child process cannot export variables into its parent, so `awsp-switch`
prints export statements (or leaves them in a hand-off file) and this
function evaluates them in the current shell. Hand-off files are suffixed
with the shell's PID so concurrent shells do not trample each other.

Install with:
    eval "$(awsp-switch --shell-init)"
"""

import re

DEFAULT_FUNCTION_NAME = "awsp"
DEFAULT_EXECUTABLE = "awsp-switch"

FUNCTION_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_-]*")

# awsp-switch options that consume the following argument
VALUE_OPTIONS = (
    "-m",
    "--mfa-code",
    "-p",
    "--source-profile",
    "--region",
    "--profile-file",
    "--credentials-file",
    "--load-credentials",
)

SHELL_FUNCTION_TEMPLATE = """\
{name}() {{
  local profile_file="${{HOME}}/.awsp.$$"
  local credentials_file="${{HOME}}/.awsp-credentials.$$"
  local selected exports rc arg takes_value has_target

  # Only a TARGET (profile name or role ARN) makes the output eval-able;
  # options alone still mean the interactive picker.
  takes_value=
  has_target=
  for arg in "$@"; do
    if [ -n "$takes_value" ]; then
      takes_value=
      continue
    fi
    case "$arg" in
      -h|--help|--version|--list|--shell-init|--shell-init=*)
        command {executable} "$@"
        return $?
        ;;
      {value_options})
        takes_value=1
        ;;
      -*)
        ;;
      *)
        has_target=1
        ;;
    esac
  done

  if [ -n "$has_target" ]; then
    exports="$(command {executable} "$@")" || return $?
    eval "$exports"
    return 0
  fi

  rm -f "$profile_file"
  command {executable} --profile-file "$profile_file" --credentials-file "$credentials_file" "$@"
  rc=$?
  if [ $rc -ne 0 ]; then
    rm -f "$profile_file" "$credentials_file"
    return $rc
  fi

  # No selection was made (no profiles, or the prompt was cancelled)
  [ -f "$profile_file" ] || return 0

  selected="$(cat "$profile_file")"
  rm -f "$profile_file"

  if [ -z "$selected" ]; then
    unset AWS_PROFILE AWS_DEFAULT_PROFILE
  elif [ -f "$credentials_file" ]; then
    exports="$(command {executable} --load-credentials "$credentials_file")" || return $?
    eval "$exports"
  else
    exports="$(command {executable} "$selected")" || return $?
    eval "$exports"
  fi
}}
"""


def render_shell_function(name=DEFAULT_FUNCTION_NAME, executable=DEFAULT_EXECUTABLE):
    """
    Render the `source`-able shell function (bash, zsh and dash compatible).

    Args:
        name: Name of the shell function to define
        executable: Command the function runs

    Raises:
        ValueError: If name is not a valid shell function name
    """
    if not FUNCTION_NAME_RE.fullmatch(name):
        raise ValueError(f"Invalid shell function name: {name!r}")
    return SHELL_FUNCTION_TEMPLATE.format(
        name=name, executable=executable, value_options="|".join(VALUE_OPTIONS)
    )
