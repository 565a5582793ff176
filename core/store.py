"""
core/store.py -- Persisted server configuration (the application context).

Pattern: Repository over three JSON files in the configuration directory.
ConfigStore owns the in-memory maps; routes read and mutate them and call the
matching save_*() method after every change.

Files (tab-indented JSON):
  params.json       {"params": [{"name": "...", "value": "..."}]}
  users.json        {"users": [{"username": "...", "password": "<hash>"}]}
  permissions.json  {"permissions": [{"directory": "...", "userlist": "..."}]}

The pydantic models below validate the file shape on load. Anything wrong with
the files raises ConfigError; the CLI turns that into a message and exit 1.

Concurrency: the maps are plain dicts mutated by admin actions without a
cross-request lock. Two concurrent admin edits race and the last save wins.
That is accepted for a low-traffic admin console; the session store and the
brute-force guard are the only structures synchronized by construction.

Layer rule: no imports from api/, web/, or auth/.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import BaseModel, ValidationError

logger = logging.getLogger("piccolo.config")

PARAMS_FILE = "params.json"
USERS_FILE = "users.json"
PERMISSIONS_FILE = "permissions.json"

REQUIRED_PARAMETERS = ("root_directory", "http_port", "admin_path", "admin_users")
DEFAULT_ADMIN_PATH = "admin"


class ConfigError(Exception):
    """Raised when the persisted configuration cannot be read, parsed or written."""


# ---------------------------------------------------------------------------
# File schemas
# ---------------------------------------------------------------------------


class _Param(BaseModel):
    name: str
    value: str


class _ParamsFile(BaseModel):
    params: list[_Param] | None = None


class _User(BaseModel):
    username: str
    password: str


class _UsersFile(BaseModel):
    users: list[_User] | None = None


class _Permission(BaseModel):
    directory: str
    userlist: str


class _PermissionsFile(BaseModel):
    permissions: list[_Permission] | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _read_model(path: Path, model: type[BaseModel]) -> BaseModel:
    if not path.is_file():
        raise ConfigError(
            f'The configuration directory exists, but it does not contain "{path}"; '
            "to reset the configuration remove the entire directory, not just its files."
        )
    try:
        return model.model_validate_json(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Cannot read {path}: {exc}") from exc
    except ValidationError as exc:
        raise ConfigError(f"Malformed configuration file {path}: {exc.error_count()} error(s)") from exc


def _write_json(path: Path, payload: dict) -> None:
    try:
        path.write_text(json.dumps(payload, indent="\t"), encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot write {path}: {exc}") from exc


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class ConfigStore:
    """In-memory view of the three configuration files.

    Usage:
        config = ConfigStore.load("/srv/piccolo/settings")
        config.users["carol"] = hash_password("secret")
        config.save_users()
    """

    def __init__(
        self,
        config_dir: str | Path,
        parameters: dict[str, str],
        users: dict[str, str],
        permissions: dict[str, str],
    ) -> None:
        self.config_dir = Path(config_dir)
        self.parameters = parameters
        self.users = users
        self.permissions = permissions
        # Set when a change only takes effect after the server listens again.
        self.restart_needed = False

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, config_dir: str | Path) -> ConfigStore:
        """Read and validate all three files from config_dir."""
        directory = Path(config_dir)
        params_path = directory / PARAMS_FILE

        params = _read_model(params_path, _ParamsFile)
        parameters = {p.name: p.value for p in params.params or []}
        for key in REQUIRED_PARAMETERS:
            if key not in parameters:
                raise ConfigError(f"{key} not defined in {params_path}")
        if not Path(parameters["root_directory"]).is_dir():
            raise ConfigError(f'root directory "{parameters["root_directory"]}" not found')

        users = _read_model(directory / USERS_FILE, _UsersFile)
        permissions = _read_model(directory / PERMISSIONS_FILE, _PermissionsFile)

        store = cls(
            directory,
            parameters,
            {u.username: u.password for u in users.users or []},
            {p.directory: p.userlist for p in permissions.permissions or []},
        )
        logger.info(
            "Configuration loaded from %s (%d users, %d private directories)",
            directory,
            len(store.users),
            len(store.permissions),
        )
        return store

    @classmethod
    def create(
        cls,
        config_dir: str | Path,
        *,
        root_directory: str,
        http_port: int,
        admin_username: str,
        admin_password_hash: str,
    ) -> ConfigStore:
        """Write a brand-new configuration into an existing, empty config_dir."""
        store = cls(
            config_dir,
            {
                "root_directory": root_directory,
                "http_port": str(http_port),
                "admin_path": DEFAULT_ADMIN_PATH,
                "admin_users": admin_username,
            },
            {admin_username: admin_password_hash},
            {},
        )
        store.save_users()
        store.save_permissions()
        store.save_parameters()
        return store

    # ------------------------------------------------------------------
    # Convenience accessors
    # ------------------------------------------------------------------

    @property
    def root_directory(self) -> str:
        return self.parameters.get("root_directory", "")

    @property
    def http_port(self) -> str:
        return self.parameters.get("http_port", "")

    @property
    def admin_path(self) -> str:
        return self.parameters.get("admin_path", DEFAULT_ADMIN_PATH).strip("/")

    @property
    def admin_users(self) -> str:
        return self.parameters.get("admin_users", "")

    # ------------------------------------------------------------------
    # Write back
    # ------------------------------------------------------------------

    def save_parameters(self) -> None:
        _write_json(
            self.config_dir / PARAMS_FILE,
            {"params": [{"name": k, "value": v} for k, v in self.parameters.items()]},
        )

    def save_users(self) -> None:
        _write_json(
            self.config_dir / USERS_FILE,
            {"users": [{"username": k, "password": v} for k, v in self.users.items()]},
        )

    def save_permissions(self) -> None:
        _write_json(
            self.config_dir / PERMISSIONS_FILE,
            {"permissions": [{"directory": k, "userlist": v} for k, v in self.permissions.items()]},
        )
