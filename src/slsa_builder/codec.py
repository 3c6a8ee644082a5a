from __future__ import annotations

import base64
import binascii
import json
from typing import List

from slsa_builder.errors import InvalidEncodedListError


def encode_list(values: List[str]) -> str:
    raw = json.dumps(list(values), separators=(",", ":")).encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def decode_list(arg: str) -> List[str]:
    # An empty argument is an empty list, not malformed JSON.
    if arg == "":
        return []
    try:
        raw = base64.b64decode(arg, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidEncodedListError(f"argument is not valid base64: {exc}") from exc
    try:
        decoded = json.loads(raw.decode("utf-8"))
    except ValueError as exc:
        raise InvalidEncodedListError(f"argument is not valid JSON: {exc}") from exc
    if not isinstance(decoded, list):
        raise InvalidEncodedListError("argument must encode a JSON array")
    if any(not isinstance(item, str) for item in decoded):
        raise InvalidEncodedListError("argument must encode a JSON array of strings")
    return decoded
