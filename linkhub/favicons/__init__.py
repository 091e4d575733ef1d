# SPDX-License-Identifier: AGPL-3.0-or-later
"""Icons of the links and the network locality decisions around them.

There is a command line for developer purposes and for deeper analysis::

  $ python -m linkhub.favicons --help
"""

from __future__ import annotations

__all__ = [
    "init",
    "classify",
    "IconResolver",
    "probe_reachability",
    "favicon_url",
    "favicon_proxy",
    "RESOLVERS",
    "RESOLVER_MAP",
]

import pathlib

from linkhub import get_setting, logger

from .locality import classify
from .probe import probe_reachability
from .proxy import favicon_url, favicon_proxy
from .resolve import IconResolver
from .resolvers import RESOLVERS, RESOLVER_MAP

logger = logger.getChild('favicons')


def init(cfg_file: pathlib.Path | str | None = None):

    # pylint: disable=import-outside-toplevel

    from . import config, cache, proxy

    if cfg_file is None:
        cfg_file = get_setting("favicons.cfg_file", "") or config.DEFAULT_CFG_TOML_PATH
        if not pathlib.Path(cfg_file).exists():
            logger.error("missing favicon config: %s", cfg_file)
            cfg_file = config.DEFAULT_CFG_TOML_PATH

    logger.debug("load favicon config: %s", cfg_file)
    cfg = config.FaviconConfig.from_toml_file(cfg_file, use_cache=True)
    cache.init(cfg.cache)
    proxy.init(cfg.proxy, cfg.resolve)

    del cache, config, proxy
    return cfg
