"""Resolve user-supplied numbers to canonical network identities.

Mobile numbers in the home market (country code 55) exist in two forms:
with and without the extra ``9`` that precedes the subscriber number.
Accounts registered before the ninth digit was introduced may only be
reachable through the short form, so both are probed, long form first.
"""
import re
from dataclasses import dataclass
from typing import Optional

from chatgate.errors import InvalidArgumentError
from chatgate.network.base import ConnectionHandle, IdentityCheck

HOME_COUNTRY_CODE = "55"
USER_DOMAIN = "@s.whatsapp.net"
GROUP_DOMAIN = "@g.us"

_NON_DIGITS = re.compile(r"\D")


@dataclass(frozen=True)
class Resolution:
    """A candidate identity the network confirmed."""
    identity: str
    check: IdentityCheck

    @property
    def canonical_id(self) -> str:
        return self.check.canonical_id or self.identity


def is_group(identity: str) -> bool:
    return identity.endswith(GROUP_DOMAIN)


def number_variants(number: str) -> list[str]:
    """Digit strings to probe for ``number``, in probing order."""
    digits = _NON_DIGITS.sub("", number)
    if not digits:
        raise InvalidArgumentError("Number must contain digits", {"number": number})
    if not digits.startswith(HOME_COUNTRY_CODE):
        return [digits]
    area = digits[2:4]
    if len(digits) == 13:
        return [digits, f"{HOME_COUNTRY_CODE}{area}{digits[5:]}"]
    if len(digits) == 12:
        return [f"{HOME_COUNTRY_CODE}{area}9{digits[4:]}", digits]
    return [digits]


def candidate_identities(number: str) -> list[str]:
    """Full identities to probe. Values already containing ``@`` are used as given."""
    number = number.strip()
    if not number:
        raise InvalidArgumentError("Number is required")
    if "@" in number:
        return [number]
    return [f"{variant}{USER_DOMAIN}" for variant in number_variants(number)]


async def resolve_identity(handle: ConnectionHandle, number: str) -> Optional[Resolution]:
    """Probe each candidate in order and return the first the network knows.

    Group identities are not probed; the network only answers existence
    checks for users.
    """
    candidates = candidate_identities(number)
    if len(candidates) == 1 and is_group(candidates[0]):
        return Resolution(candidates[0], IdentityCheck(exists=True, canonical_id=candidates[0]))
    for candidate in candidates:
        check = await handle.check_identity_exists(candidate)
        if check.exists:
            return Resolution(candidate, check)
    return None
