# SPDX-License-Identifier: AGPL-3.0-or-later
"""linkhub, a personal link directory.

The settings of the application are read from a TOML file, by default the
``settings.toml`` shipped in this package.  The environment variable
``LINKHUB_SETTINGS_PATH`` points to an alternative file::

  $ export LINKHUB_SETTINGS_PATH=/etc/linkhub/settings.toml

Settings are accessed by a dotted name, e.g. ``get_setting("server.secret_key")``.
"""

from __future__ import annotations

import logging
import os
import pathlib
import tomllib
from typing import Any

__all__ = ["logger", "settings", "get_setting", "load_settings"]

DEFAULT_SETTINGS_PATH = pathlib.Path(__file__).parent / "settings.toml"
LOG_FORMAT = "%(levelname)-8s %(name)-24s %(message)s"

logger = logging.getLogger("linkhub")
settings: dict[str, Any] = {}

_unset = object()


def load_settings(path: str | pathlib.Path | None = None) -> dict[str, Any]:
    """Load the settings from ``path`` (or from the location given by the
    environment) and replace the global :py:obj:`settings`."""

    if path is None:
        path = os.environ.get("LINKHUB_SETTINGS_PATH") or DEFAULT_SETTINGS_PATH
    path = pathlib.Path(path)

    with path.open("rb") as f:
        data = tomllib.load(f)

    settings.clear()
    settings.update(data)
    _logging_config(bool(get_setting("general.debug", False)))
    logger.debug("settings loaded from %s", path)
    return settings


def get_setting(name: str, default: Any = _unset) -> Any:
    """Returns the value to which ``name`` point.  If there is no such name in
    the settings and the ``default`` is unset, a :py:obj:`KeyError` is raised.
    """
    value: Any = settings
    for key in name.split("."):
        if isinstance(value, dict) and key in value:
            value = value[key]
            continue
        if default is _unset:
            raise KeyError(name)
        return default
    return value


def _logging_config(debug: bool):
    level = logging.DEBUG if debug else logging.WARNING
    if not logging.getLogger().handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    logger.setLevel(level)


load_settings()
