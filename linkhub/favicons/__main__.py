# SPDX-License-Identifier: AGPL-3.0-or-later
"""Command line of the favicon subsystem, for developer purposes::

  $ python -m linkhub.favicons classify http://nas.local
  $ python -m linkhub.favicons resolve --external https://github.com
  $ python -m linkhub.favicons probe 192.168.1.10
  $ python -m linkhub.favicons badge GitHub > badge.svg
  $ python -m linkhub.favicons capture --server http://linkhub.lan LINK_ID http://nas.local
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from linkhub.exceptions import ProbeTargetRejected
from linkhub.network import get_network

from . import config
from .capture import StrategyCapture, submit_captured_icon
from .locality import classify
from .models import LinkAddress
from .placeholder import badge_svg, hue_of
from .probe import probe_target
from .resolve import IconResolver


def cmd_classify(args) -> int:
    for url in args.url:
        verdict = classify(url)
        print(f"{verdict.locality.value:10} {url}")
    return 0


def cmd_resolve(args) -> int:
    cfg = config.FaviconConfig.from_toml_file(config.DEFAULT_CFG_TOML_PATH, use_cache=True)
    resolver = IconResolver(get_network(), cfg.resolve)
    address = LinkAddress(internal_url=args.internal, external_url=args.external)
    icon = asyncio.run(resolver.resolve_icon(address, prefer_internal=args.prefer_internal, title=args.title))
    print(f"{icon.kind} ({icon.source})")
    print(icon.src)
    return 0


def cmd_probe(args) -> int:
    try:
        verdict = asyncio.run(probe_target(args.target, get_network(), timeout=args.timeout))
    except ProbeTargetRejected as exc:
        print(f"rejected: {exc}", file=sys.stderr)
        return 2
    print(verdict.status.value)
    return 0


def cmd_badge(args) -> int:
    if args.hue:
        print(hue_of(args.text))
    else:
        print(badge_svg(args.text))
    return 0


def cmd_capture(args) -> int:
    async def capture_and_submit() -> int:
        network = get_network()
        icon = await StrategyCapture(network).capture(args.url)
        if icon is None:
            print(f"no icon found for {args.url}", file=sys.stderr)
            return 1
        if not await submit_captured_icon(network, args.server, args.link_id, icon):
            return 1
        print(f"icon of {args.url} stored for link {args.link_id}")
        return 0

    return asyncio.run(capture_and_submit())


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="python -m linkhub.favicons", description=__doc__.split("::")[0])
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("classify", help="internal or external URL")
    p.add_argument("url", nargs="+")
    p.set_defaults(func=cmd_classify)

    p = sub.add_parser("resolve", help="resolve the icon of a link")
    p.add_argument("--internal", default=None, help="internal URL of the link")
    p.add_argument("--external", default=None, help="external URL of the link")
    p.add_argument("--title", default=None)
    p.add_argument("--prefer-internal", action="store_true")
    p.set_defaults(func=cmd_resolve)

    p = sub.add_parser("probe", help="reachability of a private network target")
    p.add_argument("target")
    p.add_argument("--timeout", type=float, default=3.0)
    p.set_defaults(func=cmd_probe)

    p = sub.add_parser("badge", help="placeholder badge (SVG) of a text")
    p.add_argument("text")
    p.add_argument("--hue", action="store_true", help="print the hue only")
    p.set_defaults(func=cmd_badge)

    p = sub.add_parser("capture", help="capture the icon of an internal URL and store it")
    p.add_argument("--server", required=True, help="base URL of the linkhub instance")
    p.add_argument("link_id")
    p.add_argument("url")
    p.set_defaults(func=cmd_capture)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
