#!/usr/bin/env python3
"""
piccolo-share -- A small personal file server over HTTP.

Usage:
  python main.py                       # settings/ next to this file
  python main.py -c /srv/piccolo/conf  # custom configuration directory
  python main.py -l                    # license terms
  python main.py --host 127.0.0.1      # listen on one interface only

On the first run the configuration directory does not exist: a short wizard
asks for the administrator account, the HTTP port and the root directory,
writes the configuration and exits. Start the server again afterwards.

Environment variables (see core/config.py):
  SESSION_LIFETIME_MINUTES, BAN_WINDOW_MINUTES, BAN_THRESHOLD,
  LOGIN_RATE_LIMIT, NOT_FOUND_DELAY_SECONDS, SECURE_COOKIES, DEBUG
"""

import argparse
import os
import sys
from pathlib import Path
from typing import Optional

import uvicorn

from auth.tokens import hash_password
from core.config import get_settings
from core.store import ConfigError, ConfigStore
from core.wizard import run_wizard

LICENSE_TERMS = """\
 This program is free software; you can redistribute it and/or
 modify it under the terms of the GNU General Public License as
 published by the Free Software Foundation, version 2.

 This program is distributed in the hope that it will be useful,
 but WITHOUT ANY WARRANTY; without even the implied warranty of
 MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
 GNU General Public License for more details.

 You should have received a copy of the GNU General Public
 License along with this program; if not, you can visit
 https://www.gnu.org/licenses/"""


def _clean_config_dir(raw: str) -> str:
    path = raw.replace("\\", "/")
    while len(path) > 1 and path.endswith("/"):
        path = path[:-1]
    return path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="piccolo-share",
        description="A small personal file server over HTTP.",
    )
    parser.add_argument(
        "-c",
        dest="config_dir",
        metavar="DIR",
        help="use a custom configuration directory; if it does not exist it is "
        "created by the wizard, if it exists it must contain the configuration files",
    )
    parser.add_argument(
        "-l",
        dest="license",
        action="store_true",
        help="show license terms and exit",
    )
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="interface to listen on (default: all interfaces)",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.license:
        print(LICENSE_TERMS)
        return 0

    # All later get_settings() calls (lifespan included) must see the -c value.
    if args.config_dir:
        os.environ["CONFIG_DIR"] = _clean_config_dir(args.config_dir)
        get_settings.cache_clear()
    config_dir = Path(get_settings().config_dir)

    if not config_dir.exists():
        try:
            run_wizard(config_dir, hash_password=hash_password)
        except ConfigError as exc:
            print(f"Error: {exc}")
            return 1
        print("Please restart...")
        return 0
    if not config_dir.is_dir():
        print(f"error: {config_dir} is not a directory")
        return 1

    print(f"Configuration directory:\n\t{config_dir}")
    if not args.config_dir:
        print("\t(You can run the server with -c argument\n\tto define a different directory.)\n")

    try:
        config = ConfigStore.load(config_dir)
        port = int(config.http_port)
    except ConfigError as exc:
        print(f"Error: {exc}")
        return 1
    except ValueError:
        print(f"Error: http_port {config.http_port!r} is not a number")
        return 1

    print(f"The HTTP server has started:\n\thttp://localhost:{port}/")
    print(f"Administration console:\n\thttp://localhost:{port}/{config.admin_path}\n")

    from asgi import app

    uvicorn.run(app, host=args.host, port=port, log_config=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
