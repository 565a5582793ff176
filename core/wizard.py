"""
core/wizard.py -- Interactive first-run configuration.

Runs when the configuration directory does not exist yet. Asks for the
administrator credentials, the HTTP port and the published root directory,
then writes the three configuration files.

The prompt functions are parameters so tests can drive the wizard with
canned answers instead of a terminal.
"""

from __future__ import annotations

import getpass
from pathlib import Path
from typing import Callable

from core.store import ConfigError, ConfigStore

MIN_PASSWORD_LENGTH = 5
MIN_PORT = 20
MAX_PORT = 65535


class WizardError(ConfigError):
    """Invalid answer or aborted wizard. Nothing is written to disk."""


def _clean_root(raw: str) -> str:
    root = raw.strip().replace("\\", "/")
    while len(root) > 1 and root.endswith("/"):
        root = root[:-1]
    return root


def run_wizard(
    directory: str | Path,
    *,
    hash_password: Callable[[str], str],
    ask: Callable[[str], str] = input,
    ask_secret: Callable[[str], str] = getpass.getpass,
    say: Callable[[str], None] = print,
) -> ConfigStore:
    """Ask four questions, confirm, and create the configuration directory.

    hash_password is injected by the caller (auth.tokens.hash_password) to
    keep core/ free of auth/ imports.
    """
    directory = Path(directory)
    say("NEW CONFIGURATION")
    say("Please answer four questions.")

    admin_username = ask('\nAdministrator username (e.g. many people use "admin")? ').strip()
    if not admin_username:
        raise WizardError("the username cannot be empty.")
    if "," in admin_username:
        raise WizardError("the username cannot contain commas.")

    admin_password = ask_secret(f"Administrator password (at least {MIN_PASSWORD_LENGTH} characters long)? ")
    if len(admin_password) < MIN_PASSWORD_LENGTH:
        raise WizardError(f"the password must be at least {MIN_PASSWORD_LENGTH} characters long.")

    raw_port = ask("HTTP port number (e.g. many people use 8080 or 80)? ").strip()
    try:
        port = int(raw_port)
    except ValueError:
        raise WizardError("insert a number.") from None
    if port < MIN_PORT or port > MAX_PORT:
        raise WizardError(f"insert a number between {MIN_PORT} and {MAX_PORT}.")

    say("\nNow enter the root directory for all the published contents.")
    say("Please avoid relative paths like ./www")
    root_directory = _clean_root(ask("Root directory? "))
    root_path = Path(root_directory)
    if not root_path.exists():
        raise WizardError(f"directory {root_directory} does not exist.")
    if not root_path.is_dir():
        raise WizardError(f"{root_directory} is not a directory.")

    say("")
    say("Final check. Please review the values before saving them.")
    say(f' - configuration directory: "{directory}"')
    say(f' - root directory: "{root_directory}"')
    say(f' - administrator username: "{admin_username}"')
    say(f" - administrator password: {'*' * len(admin_password)}")
    say(f' - HTTP port: "{port}"')
    confirm = ask("Do you confirm [y/n]? ").strip().lower()
    if confirm not in ("y", "yes"):
        raise WizardError("configuration not saved.")

    try:
        directory.mkdir(mode=0o750)
    except FileExistsError:
        raise WizardError(
            f'the directory "{directory}" exists; to reset the configuration, delete it.'
        ) from None
    except OSError as exc:
        raise WizardError(f"cannot create {directory}: {exc}") from exc

    store = ConfigStore.create(
        directory,
        root_directory=root_directory,
        http_port=port,
        admin_username=admin_username,
        admin_password_hash=hash_password(admin_password),
    )
    say("Configuration saved!")
    return store
