"""Parsing and serialization of x402 ``WWW-Authenticate`` challenges.

A challenge header looks like::

    x402 amount="10", asset=USDC, payTo="0xabc"

The first whitespace-delimited token is the scheme, the remainder is a comma
separated list of ``key=value`` pairs. Parsing is deliberately lenient: a
malformed header yields ``None`` and malformed pairs are dropped, so that
headers from varied upstream senders never turn into errors.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from .constants import DEFAULT_SCHEME

_WHITESPACE = re.compile(r"\s+")


class ChallengeEncodingError(ValueError):
    """Raised when a challenge cannot be written as a re-parsable header."""


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    return value


def _parse_params(param_string: str) -> Dict[str, str]:
    params: Dict[str, str] = {}
    for chunk in param_string.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        key, sep, value = chunk.partition("=")
        key = key.strip().lower()
        value = value.strip()
        if not sep or not key or not value:
            continue
        params[key] = _strip_quotes(value)
    return params


@dataclass(frozen=True)
class Challenge:
    scheme: str
    params: Mapping[str, str] = field(default_factory=dict)
    raw_header: str = field(default="", compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))

    def __hash__(self) -> int:
        return hash((self.scheme, frozenset(self.params.items())))

    @classmethod
    def empty(cls, raw_header: str = "") -> "Challenge":
        """Placeholder for a 402 whose header was missing or unparsable."""
        return cls(scheme=DEFAULT_SCHEME, params={}, raw_header=raw_header)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.params.get(name.lower(), default)

    def to_header(self) -> str:
        """Serialize to ``scheme k1="v1", k2="v2"``.

        The output is not byte-identical to ``raw_header`` but parses back to an
        equal challenge. Values that the lenient parser would alter (embedded
        commas, surrounding whitespace) are rejected.
        """
        if not self.scheme or _WHITESPACE.search(self.scheme) or self.scheme != self.scheme.lower():
            raise ChallengeEncodingError(f"Invalid challenge scheme: {self.scheme!r}")

        parts = []
        for key, value in self.params.items():
            if (
                not key
                or key != key.strip()
                or key != key.lower()
                or "=" in key
                or "," in key
            ):
                raise ChallengeEncodingError(f"Invalid challenge parameter name: {key!r}")
            if "," in value or value != value.strip():
                raise ChallengeEncodingError(
                    f"Challenge parameter {key!r} has a value that cannot be encoded: {value!r}"
                )
            parts.append(f'{key}="{value}"')

        if not parts:
            return self.scheme
        return f"{self.scheme} {', '.join(parts)}"


def parse_challenge_header(header: Optional[str]) -> Optional[Challenge]:
    """Parse a ``WWW-Authenticate`` value into a :class:`Challenge`.

    Returns ``None`` for a missing or empty header, or when no scheme token can
    be found. Never raises for string input.
    """
    if not header:
        return None

    parts = _WHITESPACE.split(header, maxsplit=1)
    scheme_token = parts[0]
    if not scheme_token:
        return None

    params = _parse_params(parts[1]) if len(parts) > 1 else {}
    return Challenge(scheme=scheme_token.lower(), params=params, raw_header=header)
