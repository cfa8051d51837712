"""
Stable hashing utilities for deterministic memory identifiers.

Extraction runs derive memory ids from the position of a draft inside a
transcript batch, so re-running the same batch at the same offset produces
the same ids and upserts instead of duplicating.
"""

import hashlib
import json
import unicodedata


def stable_hash(obj: dict | list | str | bytes) -> str:
    """
    Compute stable hash of an object.

    - Dicts: sorted by keys, then JSON-serialized
    - Lists: JSON-serialized in order
    - Strings: NFC-normalized, UTF-8 encoded
    - Bytes: used directly

    Returns:
        64-character hex string (blake2b)

    Examples:
        >>> stable_hash({"b": 2, "a": 1}) == stable_hash({"a": 1, "b": 2})
        True
    """
    if isinstance(obj, (dict, list)):
        canonical = json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        data = canonical.encode("utf-8")
    elif isinstance(obj, str):
        data = unicodedata.normalize("NFC", obj).encode("utf-8")
    elif isinstance(obj, bytes):
        data = obj
    else:
        raise TypeError(f"Cannot hash type {type(obj)}: {obj}")

    return hashlib.blake2b(data, digest_size=32).hexdigest()


def memory_id_for(
    owner_id: str,
    conversation_id: str,
    starting_offset: int,
    position: int,
) -> str:
    """
    Derive a memory id from where a draft came from.

    Args:
        owner_id: Owner of the memory
        conversation_id: Source conversation
        starting_offset: Offset of the batch inside the conversation stream
        position: Index of the draft within the batch output

    Returns:
        Id of the form ``mem_<24 hex chars>``
    """
    digest = stable_hash({
        "owner": owner_id,
        "conversation": conversation_id,
        "offset": starting_offset,
        "position": position,
    })
    return f"mem_{digest[:24]}"
