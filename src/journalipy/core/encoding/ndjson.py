"""NDJSON encoder for journal records."""

import json
from collections.abc import Iterable

from journalipy.core.models import Record


def encode_records(records: Iterable[Record]) -> str:
    """Encode records to newline-delimited JSON.

    Args:
        records: An iterable of Record objects.

    Returns:
        NDJSON string with one JSON object per line.
        Empty string if no records.
    """
    lines = [json.dumps(record.to_dict(), default=str) for record in records]

    if not lines:
        return ""

    return "\n".join(lines) + "\n"
