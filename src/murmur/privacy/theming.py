# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Murmur Contributors

"""Theme clustering over sanitized, pseudonymized posts.

Pipeline:
1. Embed each post (hashed bag of words by default; sentence-transformers
   when installed and selected).
2. Link posts whose cosine similarity reaches the threshold (0.72) and take
   connected components as clusters.
3. Drop clusters smaller than ``max(3, k // 2)``; leftovers of at least
   ``max(5, k)`` posts become "General friction & one-offs".
4. Label each cluster from tf-idf top terms plus an alias table. There is
   no generative summarization.
5. Gate every theme on its own distinct-handle count, and take exemplar
   quotes only from threads that are individually visible.

The engine never sees raw identity. Handles are used only to count
distinct participants.
"""

from __future__ import annotations

import hashlib
import logging
import math
import re
import threading
from collections import Counter, defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import numpy as np

from ..core.config import get_config
from ..core.exceptions import ConfigException
from .coarsen import prep_quote
from .noise import NoisePolicy, RandomSource
from .render_state import evaluate_render_state
from .sanitizer import REPLACEMENTS, sanitize
from .types import RenderState, validate_k_threshold

if TYPE_CHECKING:
    from sentence_transformers import SentenceTransformer

logger = logging.getLogger(__name__)

GENERAL_FRICTION_LABEL = "General friction & one-offs"
DEFAULT_LABEL = "General feedback"
UNKNOWN_DEPARTMENT = "unknown"
DEFAULT_HASH_DIMENSIONS = 512
DEFAULT_MODEL_NAME = "all-MiniLM-L6-v2"

STOP_WORDS = frozenset(
    [
        "the", "and", "for", "with", "from", "this", "that", "have", "has", "are",
        "was", "but", "you", "your", "our", "into", "over", "again", "after",
        "before", "about", "onto", "because", "while", "where", "when", "been",
        "were", "they", "their", "there", "would", "could", "should", "will",
        "can", "did", "does", "doing", "done",
    ]
)  # fmt: skip

LABEL_ALIASES: dict[str, str] = {
    "scope": "scope creep",
    "burnout": "burnout & load",
    "handoff": "handoff gaps",
    "communication": "communication gaps",
    "deadline": "deadline pressure",
    "resource": "resource constraints",
    "unclear": "unclear expectations",
    "feedback": "feedback delays",
    "meeting": "meeting overhead",
    "process": "process friction",
}

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_PLACEHOLDERS = re.compile("|".join(re.escape(token) for token in set(REPLACEMENTS.values())))


def tokenize(text: str) -> list[str]:
    """Lowercase, strip punctuation and redaction tokens, drop stop words."""
    text = _PLACEHOLDERS.sub(" ", text).lower()
    text = _NON_ALNUM.sub(" ", text)
    return [word for word in text.split() if len(word) > 2 and word not in STOP_WORDS]


def top_terms(texts: Sequence[str], indices: Sequence[int], top_n: int = 5) -> list[str]:
    """Rank terms in a cluster by tf * log(1 + N / (1 + df))."""
    df: Counter[str] = Counter()
    tf: Counter[str] = Counter()
    for i in indices:
        tokens = tokenize(texts[i])
        df.update(set(tokens))
        tf.update(tokens)

    n = len(indices)
    scored = [(term, freq * math.log(1 + n / (1 + df[term]))) for term, freq in tf.items()]
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return [term for term, _ in scored[:top_n]]


def label_from_terms(terms: Sequence[str]) -> str:
    """Build a short label from ranked terms."""
    if not terms:
        return DEFAULT_LABEL
    primary = LABEL_ALIASES.get(terms[0], terms[0])
    primary = primary[:1].upper() + primary[1:]
    if len(terms) < 2:
        return primary
    return f"{primary} & {terms[1]}"


# =============================================================================
# EMBEDDERS
# =============================================================================


@runtime_checkable
class Embedder(Protocol):
    """Protocol for turning texts into L2-normalized vectors."""

    def embed(self, texts: Sequence[str]) -> np.ndarray:
        """Embed texts as a (len(texts), dims) float array."""
        ...


class HashingEmbedder:
    """Hashed bag-of-words embedder.

    Deterministic across processes (blake2b, not ``hash()``), needs no
    model download, and is good enough to group posts that share vocabulary.
    """

    def __init__(self, dimensions: int = DEFAULT_HASH_DIMENSIONS):
        self.dimensions = dimensions

    def _bucket(self, token: str) -> int:
        digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
        return int.from_bytes(digest, "big") % self.dimensions

    def embed(self, texts: Sequence[str]) -> np.ndarray:
        vectors = np.zeros((len(texts), self.dimensions), dtype=np.float64)
        for row, text in enumerate(texts):
            for token in tokenize(text):
                vectors[row, self._bucket(token)] += 1.0
        norms = np.linalg.norm(vectors, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        return vectors / norms


class ModelLoadError(ConfigException):
    """Raised when the sentence-transformers model cannot be loaded."""


class SentenceTransformerEmbedder:
    """Embedder backed by sentence-transformers.

    The model is lazily loaded on first use and cached for subsequent calls.
    Requires the ``embeddings`` extra.
    """

    def __init__(self, model_name: str = DEFAULT_MODEL_NAME, device: str = "cpu"):
        self.model_name = model_name
        self.device = device
        self._model: SentenceTransformer | None = None
        self._lock = threading.Lock()

    def _get_model(self) -> SentenceTransformer:
        if self._model is None:
            with self._lock:
                if self._model is None:
                    try:
                        from sentence_transformers import SentenceTransformer
                    except ImportError as e:
                        raise ModelLoadError(
                            "sentence-transformers not installed. "
                            "Install with: pip install murmur-privacy-gate[embeddings]"
                        ) from e
                    logger.info(f"Loading embedding model: {self.model_name} (device={self.device})")
                    try:
                        self._model = SentenceTransformer(self.model_name, device=self.device)
                    except Exception as e:
                        raise ModelLoadError(f"Failed to load embedding model '{self.model_name}': {e}") from e
        return self._model

    def embed(self, texts: Sequence[str]) -> np.ndarray:
        if not texts:
            return np.zeros((0, 0), dtype=np.float64)
        model = self._get_model()
        return np.asarray(model.encode(list(texts), normalize_embeddings=True), dtype=np.float64)


def cluster_by_threshold(vectors: np.ndarray, threshold: float) -> list[list[int]]:
    """Connected components of the graph linking pairs with cosine >= threshold.

    Rows of vectors must be L2-normalized.
    """
    n = len(vectors)
    if n == 0:
        return []
    adjacency = (vectors @ vectors.T) >= threshold

    visited = [False] * n
    components: list[list[int]] = []
    for start in range(n):
        if visited[start]:
            continue
        component: list[int] = []
        stack = [start]
        while stack:
            node = stack.pop()
            if visited[node]:
                continue
            visited[node] = True
            component.append(node)
            stack.extend(int(j) for j in np.flatnonzero(adjacency[node]) if not visited[j])
        components.append(sorted(component))
    return components


# =============================================================================
# THEMES
# =============================================================================


@dataclass(frozen=True)
class ThemePost:
    """A sanitized post handed to the theming engine.

    ``thread_state`` is the render state of the post's own thread, filled
    in by the gate. It defaults to suppressed.
    """

    text: str
    handle: str
    thread_id: str
    thread_state: RenderState = RenderState.SUPPRESSED
    channel: str | None = None
    department: str | None = None


class ThemeStatus(StrEnum):
    OK = "ok"
    INSUFFICIENT_DATA = "insufficient_data"


@dataclass
class Theme:
    """One clustered theme as exposed outside the gate.

    Counts are noised. A suppressed theme carries only its noised size.
    """

    render_state: RenderState
    posts_count: int
    label: str | None = None
    summary: str | None = None
    top_terms: list[str] = field(default_factory=list)
    exemplar_quotes: list[str] = field(default_factory=list)
    channels: list[str] = field(default_factory=list)
    dept_hits: dict[str, int] = field(default_factory=dict)

    @property
    def is_visible(self) -> bool:
        return self.render_state == RenderState.VISIBLE

    def to_dict(self) -> dict[str, Any]:
        if not self.is_visible:
            return {"render_state": self.render_state.value, "posts_count": self.posts_count}
        return {
            "render_state": self.render_state.value,
            "label": self.label,
            "summary": self.summary,
            "posts_count": self.posts_count,
            "top_terms": list(self.top_terms),
            "exemplar_quotes": list(self.exemplar_quotes),
            "channels": list(self.channels),
            "dept_hits": dict(self.dept_hits),
        }


@dataclass
class ThemeReport:
    """Result of one clustering run."""

    status: ThemeStatus
    k_threshold: int
    themes: list[Theme] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "k_threshold": self.k_threshold,
            "themes": [theme.to_dict() for theme in self.themes],
        }


def _k_safe_breakdown(
    posts: Sequence[ThemePost], members: list[int], attribute: str, k: int
) -> tuple[Counter[str], int]:
    """Post counts per channel or department, keeping only groups of k or more people.

    A group name is itself revealing when few people share it, so smaller
    groups are left out. Returns the kept counts and the number of posts
    that were left out or had no value.
    """
    counts: Counter[str] = Counter()
    handles: dict[str, set[str]] = defaultdict(set)
    for i in members:
        name = getattr(posts[i], attribute)
        if name:
            counts[name] += 1
            handles[name].add(posts[i].handle)
    kept = Counter({name: count for name, count in counts.items() if len(handles[name]) >= k})
    return kept, len(members) - sum(kept.values())


class ThemingEngine:
    """Clusters posts into gated themes.

    Args:
        embedder: Embedding backend (defaults to HashingEmbedder)
        similarity_threshold: Cosine threshold for linking posts
            (config ``theme_similarity``)
        max_quotes: Exemplar quotes per theme (config ``max_exemplar_quotes``)
        rng: Random source for count noise
    """

    def __init__(
        self,
        embedder: Embedder | None = None,
        similarity_threshold: float | None = None,
        max_quotes: int | None = None,
        rng: RandomSource | None = None,
    ):
        config = get_config()
        self.embedder = embedder or HashingEmbedder()
        self.similarity_threshold = (
            config.theme_similarity if similarity_threshold is None else similarity_threshold
        )
        self.max_quotes = config.max_exemplar_quotes if max_quotes is None else max_quotes
        self.rng = rng

    def cluster(self, posts: Sequence[ThemePost], k_threshold: int | None = None) -> ThemeReport:
        """Cluster posts into themes gated at k_threshold.

        Empty input gives an empty report. Fewer than k distinct handles
        across all posts suppresses every theme and marks the report
        ``insufficient_data``.
        """
        k = validate_k_threshold(get_config().default_k_threshold if k_threshold is None else k_threshold)
        if not posts:
            return ThemeReport(status=ThemeStatus.OK, k_threshold=k)

        texts = [post.text for post in posts]
        clusters = cluster_by_threshold(self.embedder.embed(texts), self.similarity_threshold)

        min_size = max(3, k // 2)
        kept = [members for members in clusters if len(members) >= min_size]
        covered = {i for members in kept for i in members}
        leftovers = [i for i in range(len(posts)) if i not in covered]

        groups: list[tuple[list[int], bool]] = [(members, False) for members in kept]
        if len(leftovers) >= max(5, k):
            groups.append((leftovers, True))

        enough_people = len({post.handle for post in posts}) >= k
        status = ThemeStatus.OK if enough_people else ThemeStatus.INSUFFICIENT_DATA

        themes = [self._build_theme(posts, texts, members, k, general, enough_people) for members, general in groups]
        logger.info(
            "Clustered posts into themes",
            extra={
                "extra_data": {
                    "posts": len(posts),
                    "clusters": len(clusters),
                    "themes": len(themes),
                    "status": status.value,
                }
            },
        )
        return ThemeReport(status=status, k_threshold=k, themes=themes)

    def _build_theme(
        self,
        posts: Sequence[ThemePost],
        texts: Sequence[str],
        members: list[int],
        k: int,
        general: bool,
        enough_people: bool,
    ) -> Theme:
        policy = NoisePolicy.themes()
        posts_count = policy.apply(len(members), self.rng).value
        participants = len({posts[i].handle for i in members})
        state = evaluate_render_state(participants, k) if enough_people else RenderState.SUPPRESSED
        if state == RenderState.SUPPRESSED:
            return Theme(render_state=state, posts_count=posts_count)

        terms = top_terms(texts, members)
        channel_counts, _ = _k_safe_breakdown(posts, members, "channel", k)
        channels = [name for name, _ in channel_counts.most_common()]
        dept_counts, folded = _k_safe_breakdown(posts, members, "department", k)
        folded += dept_counts.pop(UNKNOWN_DEPARTMENT, 0)
        if folded:
            dept_counts[UNKNOWN_DEPARTMENT] = folded
        dept_hits = {dept: policy.apply(count, self.rng).value for dept, count in dept_counts.items()}

        if general:
            label = GENERAL_FRICTION_LABEL
            summary = (
                f"A mix of smaller issues across {', '.join(terms[:3])}. "
                "No single sub-topic meets k this period."
            )
        else:
            label = label_from_terms(terms)
            summary = (
                f"{posts_count} posts raised concerns around {label.lower()}. "
                f"Common terms include {', '.join(terms[:3])}."
            )
            if channels:
                summary += f" Most mentions came from #{', #'.join(channels[:2])}."

        return Theme(
            render_state=state,
            posts_count=posts_count,
            label=label,
            summary=summary,
            top_terms=terms,
            exemplar_quotes=self._exemplar_quotes(posts, members),
            channels=channels,
            dept_hits=dept_hits,
        )

    def _exemplar_quotes(self, posts: Sequence[ThemePost], members: list[int]) -> list[str]:
        quotes: list[str] = []
        for i in members:
            if len(quotes) >= self.max_quotes:
                break
            post = posts[i]
            if post.thread_state != RenderState.VISIBLE:
                continue
            quote = prep_quote(sanitize(post.text))
            if quote and quote not in quotes:
                quotes.append(quote)
        return quotes
