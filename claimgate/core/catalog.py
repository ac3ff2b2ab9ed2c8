"""
Edition Catalog

Fixed lookup table of claimable textbook editions. A Catalog is built
once and passed to whoever needs it (ClaimService, ClaimFlow).
"""

from typing import Iterable, Iterator, Optional

from ..schemas import CatalogEntry, CatalogOption


_SHARE_CODE = "talk"

# (option_id, display name, share id)
_DEFAULT_EDITIONS = (
    ("pep-together", "人教版·一起点", "1tCTnBVJR27pGb5lBnfNJCg"),
    ("pep-three", "人教版·三起点", "1VxtrXNOoqeI-jyNl3VYucw"),
    ("bnu", "北师大版", "1ehElAltU7dL9OT4K3lU3vw"),
    ("jijiao-together", "冀教版·一起点", "1OeLc_dnwdaU0TCEyM6-Ffg"),
    ("jijiao-three", "冀教版·三起点", "154u1tF-YzzOXqMmWZHpDRg"),
    ("fltrp-together", "外研社·一起点", "1girOir1Mx_pNOeQbc4i-iQ"),
    ("fltrp-three", "外研社·三起点", "1ByBQ9O6tnX7bTwOifFq7Jg"),
    ("yilin", "译林版", "1Vs2yD0438JUPvmMOK5F89w"),
    ("shangjiao", "沪教版", "1H97VszvcHAaSTJlPLlGMbA"),
)


class Catalog:
    """Read-only mapping of option_id -> CatalogEntry."""

    def __init__(self, entries: Iterable[CatalogEntry]):
        self._entries: dict[str, CatalogEntry] = {}
        for entry in entries:
            if entry.option_id in self._entries:
                raise ValueError(f"Duplicate catalog option: {entry.option_id}")
            self._entries[entry.option_id] = entry

    def get(self, option_id: str) -> Optional[CatalogEntry]:
        return self._entries.get(option_id)

    def __contains__(self, option_id: object) -> bool:
        return option_id in self._entries

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def option_ids(self) -> list[str]:
        return list(self._entries)

    def entries(self) -> list[CatalogEntry]:
        return list(self._entries.values())

    def public_options(self) -> list[CatalogOption]:
        """Options safe to list publicly (no links or codes)."""
        return [CatalogOption(option_id=e.option_id, name=e.name) for e in self]


def default_catalog() -> Catalog:
    """The shipped edition list."""
    return Catalog(
        CatalogEntry(
            option_id=option_id,
            name=name,
            linkage=f"https://pan.baidu.com/s/{share_id}?pwd={_SHARE_CODE}",
            extraction_code=_SHARE_CODE,
        )
        for option_id, name, share_id in _DEFAULT_EDITIONS
    )
