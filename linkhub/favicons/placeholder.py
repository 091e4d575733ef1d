# SPDX-License-Identifier: AGPL-3.0-or-later
"""Deterministic placeholder badge for links without an icon.

The color of the badge is derived from a polynomial rolling hash of the host
name (or the title of the link)::

  hash = sum(charCode(c[i]) * 31 ** (n - 1 - i))
  hue  = ((hash mod 360) + 360) mod 360

``charCode`` are the UTF-16 code units of the string, the sum is computed
without overflow.  The same string gets the same color in every
implementation of this formula.
"""

from __future__ import annotations

import html

from .models import DataUriIcon

BADGE_SVG = """\
<svg width="{size}" height="{size}" viewBox="0 0 32 32" xmlns="http://www.w3.org/2000/svg">
  <rect width="32" height="32" rx="6" fill="hsl({hue}, 70%, 60%)" />
  <text x="16" y="16" font-family="Arial, sans-serif" font-size="16" font-weight="bold"
        fill="#FFFFFF" text-anchor="middle" dominant-baseline="central">{char}</text>
</svg>
"""


def char_codes(text: str) -> list[int]:
    raw = text.encode("utf-16-le")
    return [int.from_bytes(raw[i : i + 2], "little") for i in range(0, len(raw), 2)]


def string_hash(text: str) -> int:
    h = 0
    for code in char_codes(text):
        h = h * 31 + code
    return h


def hue_of(text: str) -> int:
    return ((string_hash(text) % 360) + 360) % 360


def badge_letter(text: str) -> str:
    text = (text or "").strip()
    if not text:
        return "?"
    return text[0].upper()


def badge_svg(text: str, char: str | None = None, size: int = 32) -> str:
    """SVG of the badge, ``char`` defaults to the first letter of ``text``."""
    letter = badge_letter(char) if char else badge_letter(text)
    return BADGE_SVG.format(size=int(size), hue=hue_of(text or letter), char=html.escape(letter))


def placeholder_icon(text: str) -> DataUriIcon:
    """The placeholder badge as ``data:`` URI icon, this never fails."""
    return DataUriIcon.from_bytes(badge_svg(text).encode("utf-8"), "image/svg+xml", source="placeholder")
