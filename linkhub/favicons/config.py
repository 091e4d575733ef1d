# SPDX-License-Identifier: AGPL-3.0-or-later
"""Configuration of the favicon subsystem, the defaults are in
:origin:`linkhub/favicons/favicons.toml`::

  [favicons]
  cfg_schema = 1

  [favicons.cache]
  db_type = "mem"

  [favicons.proxy]
  max_age = 604800

  [favicons.resolve]
  step_timeout = 3.0
"""

from __future__ import annotations

import pathlib
import tomllib

from pydantic import BaseModel, ValidationError

from linkhub.exceptions import FaviconConfigError

from .cache import FaviconCacheConfig
from .proxy import FaviconProxyConfig
from .resolve import ResolveConfig

CONFIG_SCHEMA: int = 1
"""Version of the configuration schema."""

TOML_CACHE: dict[str, "FaviconConfig"] = {}
"""Cache config objects by TOML's filename."""

DEFAULT_CFG_TOML_PATH = pathlib.Path(__file__).parent / "favicons.toml"


class FaviconConfig(BaseModel):
    """The class aggregates configurations of the favicon tools"""

    cfg_schema: int
    """Config's schema version.  Specifying the version of the schema
    is mandatory, currently only version :py:obj:`CONFIG_SCHEMA` is supported.
    By specifying a version, it is possible to ensure downward compatibility in
    the event of future changes to the configuration schema"""

    cache: FaviconCacheConfig = FaviconCacheConfig()
    """Setup of the :py:obj:`.cache.FaviconCacheConfig`."""

    proxy: FaviconProxyConfig = FaviconProxyConfig()
    """Setup of the :py:obj:`.proxy.FaviconProxyConfig`."""

    resolve: ResolveConfig = ResolveConfig()
    """Setup of the :py:obj:`.resolve.ResolveConfig`."""

    @classmethod
    def from_toml_file(cls, cfg_file: pathlib.Path | str, use_cache: bool) -> "FaviconConfig":
        """Create a config object from a TOML file, the ``use_cache`` argument
        specifies whether a cache should be used.
        """

        cached = TOML_CACHE.get(str(cfg_file))
        if use_cache and cached:
            return cached

        try:
            with open(cfg_file, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            raise FaviconConfigError(f"can't read favicon config {cfg_file}: {exc}") from exc

        cfg = data.get("favicons", {})
        schema = cfg.get("cfg_schema")
        if schema != CONFIG_SCHEMA:
            raise FaviconConfigError(
                f"config schema version {CONFIG_SCHEMA} is needed, version {schema} is given in {cfg_file}"
            )

        try:
            cfg = cls(**cfg)
        except ValidationError as exc:
            raise FaviconConfigError(f"invalid favicon config {cfg_file}: {exc}") from exc

        TOML_CACHE[str(cfg_file)] = cfg
        return cfg
