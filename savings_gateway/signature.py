"""PayFast signature builder.

The gateway signs fields in the order they were posted, not in a canonical
sort, so the order of ``fields`` is part of the signature.
"""

import hashlib
import hmac
from typing import Iterable, List, Mapping, NamedTuple, Optional, Tuple, Union
from urllib.parse import quote_plus

Fields = Union[Mapping[str, object], Iterable[Tuple[str, object]]]

# Left literal by the gateway's reference encoder (encodeURIComponent).
_SAFE_CHARS = "!*'()~"


class SignatureResult(NamedTuple):
    signature: str
    param_string: str
    string_to_hash: str
    param_order: List[str]


def encode_value(value: object) -> str:
    """Trim and form-encode a value, spaces becoming ``+``."""

    return quote_plus(str(value).strip(), safe=_SAFE_CHARS)


def _ordered_pairs(fields: Fields) -> List[Tuple[str, str]]:
    items = fields.items() if isinstance(fields, Mapping) else fields
    pairs = []
    for key, value in items:
        if value is None:
            continue
        text = str(value).strip()
        if text == "":
            continue
        pairs.append((key, text))
    return pairs


def build_signature(fields: Fields, passphrase: Optional[str] = None) -> SignatureResult:
    """Compute the MD5 signature over ``fields`` in their given order."""

    pairs = _ordered_pairs(fields)
    param_string = "&".join(f"{key}={encode_value(value)}" for key, value in pairs)

    string_to_hash = param_string
    clean_passphrase = passphrase.strip() if passphrase else ""
    if clean_passphrase:
        string_to_hash = f"{param_string}&passphrase={clean_passphrase}"

    signature = hashlib.md5(string_to_hash.encode("utf-8")).hexdigest()
    return SignatureResult(
        signature=signature,
        param_string=param_string,
        string_to_hash=string_to_hash,
        param_order=[key for key, _ in pairs],
    )


def verify_signature(fields: Fields, received: Optional[str], passphrase: Optional[str] = None) -> bool:
    if not received:
        return False
    expected = build_signature(fields, passphrase).signature
    return hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))
