"""Address normalization helpers."""

from __future__ import annotations

import re

from web3 import Web3

from circles.errors import InvalidInputError

_HEX_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
NAME_SERVICE_SUFFIX = ".eth"


def normalize_address(value: str | None) -> str:
    """Normalize on-chain address keys for internal maps/dedup."""
    return str(value or "").strip().lower()


def is_hex_address(value: str | None) -> bool:
    text = str(value or "").strip()
    if not _HEX_ADDRESS_RE.match(text):
        return False
    # Mixed-case input must carry a valid EIP-55 checksum.
    return bool(Web3.is_address(text))


def is_name_handle(value: str | None) -> bool:
    text = str(value or "").strip()
    if not text or text.startswith(".") or text.endswith(".") or any(ch.isspace() for ch in text):
        return False
    return text.lower().endswith(NAME_SERVICE_SUFFIX) or "." in text


def to_checksum(value: str) -> str:
    return Web3.to_checksum_address(str(value).strip())


def normalize_input(value: str | None) -> str:
    """Turn user input into a checksum address or a lower-cased name handle.

    Raises InvalidInputError with reason ``empty`` for blank input and
    ``invalid_address`` for anything that is neither form.
    """
    text = str(value or "").strip()
    if not text:
        raise InvalidInputError("empty", "Please enter an address or ENS name")
    if is_hex_address(text):
        return to_checksum(text)
    if is_name_handle(text):
        return text.lower()
    raise InvalidInputError("invalid_address", "Please enter a valid Ethereum address or ENS name")


def truncate_address(address: str | None, start_chars: int = 6, end_chars: int = 4) -> str:
    text = str(address or "")
    if not text:
        return ""
    if len(text) <= start_chars + end_chars:
        return text
    return f"{text[:start_chars]}...{text[-end_chars:]}"
