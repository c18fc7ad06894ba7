# exam_prep/core/dedup.py
import re
import unicodedata
from typing import Dict, Type

_WHITESPACE = re.compile(r"\s+")


class DedupPolicy:
    """Maps an article title to the key two articles must share to be duplicates"""

    name = "base"

    def key(self, title: str) -> str:
        raise NotImplementedError


class ExactTitlePolicy(DedupPolicy):
    """Title equality is the only signal"""

    name = "exact"

    def key(self, title: str) -> str:
        return title or ""


class NormalizedTitlePolicy(DedupPolicy):
    """Ignore case, punctuation and whitespace differences"""

    name = "normalized"

    def key(self, title: str) -> str:
        text = unicodedata.normalize("NFKC", title or "").casefold()
        # Punctuation and symbols only; combining marks of Indic scripts stay
        text = "".join(
            " " if unicodedata.category(ch)[0] in ("P", "S") else ch
            for ch in text
        )
        return _WHITESPACE.sub(" ", text).strip()


_POLICIES: Dict[str, Type[DedupPolicy]] = {
    ExactTitlePolicy.name: ExactTitlePolicy,
    NormalizedTitlePolicy.name: NormalizedTitlePolicy,
}


def get_dedup_policy(name: str) -> DedupPolicy:
    try:
        return _POLICIES[name]()
    except KeyError:
        raise ValueError(f"Unknown dedup policy '{name}'")
