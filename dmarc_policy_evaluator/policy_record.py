from typing import Dict, Iterable, Optional, Tuple

from dmarc_policy_evaluator.dmarc_types import (
    AlignmentMode,
    Disposition,
    PublishedPolicy,
)

RECORD_PREFIX = "v=DMARC1"


class MalformedRecord(Exception):
    def __init__(self, domain: str, record: str, reason: str):
        super().__init__(domain, record, reason)
        self.domain = domain
        self.record = record
        self.reason = reason

    def __str__(self):
        return f"Malformed DMARC record for {self.domain}: {self.reason}."


def select_policy_record(records: Iterable[str]) -> Optional[str]:
    """Pick the single DMARC record out of the TXT strings at ``_dmarc.*``.

    Returns None if there is no record starting with ``v=DMARC1`` or if
    there is more than one.
    """
    candidates = [
        record
        for record in records
        if record[: len(RECORD_PREFIX)].upper() == RECORD_PREFIX.upper()
    ]
    if len(candidates) != 1:
        return None
    return candidates[0]


def _split_tags(record: str) -> Tuple[Tuple[str, str], ...]:
    tags = []
    for part in record.split(";"):
        part = part.strip()
        if not part:
            continue
        name, sep, value = part.partition("=")
        if not sep:
            continue
        tags.append((name.strip().lower(), value.strip()))
    return tuple(tags)


def _parse_disposition(value: Optional[str]) -> Optional[Disposition]:
    if value is None:
        return None
    try:
        return Disposition(value.lower())
    except ValueError:
        return None


def _parse_alignment(value: Optional[str]) -> AlignmentMode:
    try:
        return AlignmentMode((value or "r").lower())
    except ValueError:
        return AlignmentMode.RELAXED


def _parse_int(value: Optional[str], default: int, lower: int, upper: int) -> int:
    if value is None or not (value.isascii() and value.isdigit()):
        return default
    number = int(value)
    if number < lower or number > upper:
        return default
    return number


def _parse_uris(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ()
    return tuple(uri.strip() for uri in value.split(",") if uri.strip())


def parse_policy_record(domain: str, record: str) -> PublishedPolicy:
    tags = _split_tags(record)
    if not tags or tags[0][0] != "v" or tags[0][1].upper() != "DMARC1":
        raise MalformedRecord(domain, record, "v=DMARC1 must be the first tag")

    values: Dict[str, str] = {}
    for name, value in tags[1:]:
        values.setdefault(name, value)

    if "p" not in values:
        raise MalformedRecord(domain, record, "missing p tag")
    p = _parse_disposition(values["p"])
    if p is None:
        raise MalformedRecord(domain, record, f"invalid policy {values['p']!r}")

    return PublishedPolicy(
        domain=domain,
        p=p,
        sp=_parse_disposition(values.get("sp")),
        adkim=_parse_alignment(values.get("adkim")),
        aspf=_parse_alignment(values.get("aspf")),
        pct=_parse_int(values.get("pct"), 100, 0, 100),
        rua=_parse_uris(values.get("rua")),
        ruf=_parse_uris(values.get("ruf")),
        fo=values.get("fo", "0"),
        rf=values.get("rf", "afrf"),
        ri=_parse_int(values.get("ri"), 86400, 0, 2**32 - 1),
        raw=record,
    )
