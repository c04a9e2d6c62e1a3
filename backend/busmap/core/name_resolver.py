"""Map free-text stop labels (feed, CSV headers, override tables) to registry ids.

Both resolvers try an exact match on the normalized name first and only fall
back to fuzzy scoring when that fails, so a fuzzy near-miss can never override
an exact hit. Fuzzy candidates are accepted only at or above the threshold
(0.0-1.0, 1.0 = identical).
"""

import abc
import logging
from collections.abc import Iterable
from dataclasses import dataclass

from rapidfuzz import fuzz, process
from rapidfuzz.distance import Levenshtein

from busmap.core.names import PLACEHOLDER_NAMES, normalize_name
from busmap.core.stop_registry import MatchQuality, StopRegistry

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.74
PREFIX_SCORE = 0.9
CONTAINMENT_SCORE = 0.82


@dataclass(frozen=True)
class NameMatch:
    label: str
    stop_id: int | None
    score: float
    quality: MatchQuality


def score_name(target: str, candidate: str) -> float:
    """Similarity of two normalized names: prefix and containment rank above edit distance."""
    if not target or not candidate:
        return 0.0
    if target == candidate:
        return 1.0
    if candidate.startswith(target) or target.startswith(candidate):
        return PREFIX_SCORE
    if target in candidate or candidate in target:
        return CONTAINMENT_SCORE
    return Levenshtein.normalized_similarity(target, candidate)


class NameResolver(abc.ABC):
    """Resolves stop labels against a StopRegistry."""

    def __init__(self, registry: StopRegistry, threshold: float = DEFAULT_THRESHOLD) -> None:
        self.registry = registry
        self.threshold = threshold
        # (normalized name, stop id) in registry order, primary name first
        self._candidates: list[tuple[str, int]] = []
        for stop in registry:
            for key in dict.fromkeys(normalize_name(n) for n in stop.names):
                if key:
                    self._candidates.append((key, stop.id))

    def resolve(self, raw_label: str | None) -> int | None:
        return self.match(raw_label).stop_id

    def match(self, raw_label: str | None) -> NameMatch:
        label = raw_label or ""
        query = normalize_name(label)
        if query in PLACEHOLDER_NAMES:
            return NameMatch(label, None, 0.0, MatchQuality.UNMATCHED)

        exact = self.registry.lookup_name(query)
        if exact is not None:
            return NameMatch(label, exact, 1.0, MatchQuality.EXACT)

        stop_id, score = self._best_fuzzy(query)
        if stop_id is None or score < self.threshold:
            logger.debug("No stop for %r (best score %.2f)", label, score)
            return NameMatch(label, None, score, MatchQuality.UNMATCHED)
        return NameMatch(label, stop_id, score, MatchQuality.FUZZY)

    def match_many(self, labels: Iterable[str]) -> list[NameMatch]:
        """Batch variant used when geocoding a whole candidate set."""
        matches = [self.match(label) for label in labels]
        matched = sum(1 for m in matches if m.stop_id is not None)
        logger.info("Matched %d/%d stop labels", matched, len(matches))
        return matches

    @abc.abstractmethod
    def _best_fuzzy(self, query: str) -> tuple[int | None, float]:
        """Return (stop_id, score) of the best fuzzy candidate for a normalized query."""


class PairwiseNameResolver(NameResolver):
    """Scores the query against every candidate name. Fine for a few hundred stops."""

    def _best_fuzzy(self, query: str) -> tuple[int | None, float]:
        best_id: int | None = None
        best_score = 0.0
        for key, stop_id in self._candidates:
            score = score_name(query, key)
            # Strict comparison: on ties the earlier registry entry wins
            if score > best_score:
                best_score = score
                best_id = stop_id
        return best_id, best_score


class IndexedNameResolver(NameResolver):
    """Inverted token index narrowed by edit distance, scored with rapidfuzz.

    Query tokens are matched to indexed tokens within a small Levenshtein
    distance; only candidates sharing such a token are scored. If nothing
    shares a token, every candidate is scored.
    """

    def __init__(self, registry: StopRegistry, threshold: float = DEFAULT_THRESHOLD) -> None:
        super().__init__(registry, threshold)
        self._choices: dict[int, str] = {i: key for i, (key, _) in enumerate(self._candidates)}
        self._token_index: dict[str, set[int]] = {}
        for position, (key, _) in enumerate(self._candidates):
            for token in key.split():
                self._token_index.setdefault(token, set()).add(position)
        self._tokens = list(self._token_index)

    @staticmethod
    def _max_token_distance(token: str) -> int:
        if len(token) <= 3:
            return 0
        return 1 if len(token) <= 6 else 2

    def _candidate_positions(self, query: str) -> set[int]:
        positions: set[int] = set()
        for token in query.split():
            hits = process.extract(
                token, self._tokens,
                scorer=Levenshtein.distance,
                score_cutoff=self._max_token_distance(token),
                limit=None,
            )
            for indexed_token, _, _ in hits:
                positions |= self._token_index[indexed_token]
        return positions

    def _best_fuzzy(self, query: str) -> tuple[int | None, float]:
        if not self._choices:
            return None, 0.0

        cutoff = self.threshold * 100
        positions = self._candidate_positions(query)
        result = None
        if positions:
            narrowed = {p: self._choices[p] for p in sorted(positions)}
            result = process.extractOne(query, narrowed, scorer=fuzz.WRatio, score_cutoff=cutoff)
        if result is None:
            result = process.extractOne(query, self._choices, scorer=fuzz.WRatio)
        if result is None:
            return None, 0.0

        _, score, position = result
        return self._candidates[position][1], score / 100.0
