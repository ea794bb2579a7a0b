"""Tests for theme clustering."""

from __future__ import annotations

import sys
from dataclasses import replace

import numpy as np
import pytest

from murmur.privacy.theming import (
    DEFAULT_LABEL,
    GENERAL_FRICTION_LABEL,
    HashingEmbedder,
    ModelLoadError,
    SentenceTransformerEmbedder,
    ThemePost,
    ThemeStatus,
    ThemingEngine,
    cluster_by_threshold,
    label_from_terms,
    tokenize,
    top_terms,
)
from murmur.privacy.types import RenderState

UNIQUE_WORDS = ["alpha", "bravo", "charlie", "delta", "echo", "foxtrot", "golf", "hotel"]


def _posts(base: str, handles: list[str], state: RenderState = RenderState.VISIBLE, **kwargs) -> list[ThemePost]:
    return [
        ThemePost(
            text=f"{base} {UNIQUE_WORDS[i]}",
            handle=handle,
            thread_id=f"t-{base[:4]}-{i}",
            thread_state=state,
            **kwargs,
        )
        for i, handle in enumerate(handles)
    ]


@pytest.fixture
def engine(rng):
    return ThemingEngine(rng=rng)


class TestTokenize:
    def test_drops_stop_words_and_short_tokens(self):
        assert tokenize("The deploy is broken, and it's bad!") == ["deploy", "broken", "bad"]

    def test_strips_redaction_tokens(self):
        assert tokenize("ask [@redacted] re [link] deploys") == ["ask", "deploys"]


class TestTopTerms:
    def test_shared_terms_rank_first(self):
        texts = ["deploy broken again", "deploy broken today", "lunch options"]
        terms = top_terms(texts, [0, 1], top_n=2)
        assert terms == ["deploy", "broken"]


class TestLabelFromTerms:
    def test_alias(self):
        assert label_from_terms(["scope", "creep"]) == "Scope creep & creep"

    def test_single_term(self):
        assert label_from_terms(["tooling"]) == "Tooling"

    def test_empty(self):
        assert label_from_terms([]) == DEFAULT_LABEL


class TestHashingEmbedder:
    def test_normalized_and_deterministic(self):
        embedder = HashingEmbedder()
        vectors = embedder.embed(["deploy broken", "deploy broken", ""])
        assert vectors.shape == (3, 512)
        assert np.linalg.norm(vectors[0]) == pytest.approx(1.0)
        assert np.allclose(vectors[0], vectors[1])
        assert not vectors[2].any()


class TestSentenceTransformerEmbedder:
    def test_empty_input_needs_no_model(self):
        assert SentenceTransformerEmbedder().embed([]).shape == (0, 0)

    def test_missing_package_raises(self, monkeypatch):
        monkeypatch.setitem(sys.modules, "sentence_transformers", None)
        with pytest.raises(ModelLoadError):
            SentenceTransformerEmbedder().embed(["text"])


class TestClusterByThreshold:
    def test_connected_components(self):
        vectors = np.array(
            [
                [1.0, 0.0],
                [0.9, np.sqrt(1 - 0.81)],
                [0.0, 1.0],
            ]
        )
        assert cluster_by_threshold(vectors, 0.72) == [[0, 1], [2]]

    def test_transitive_links(self):
        a = np.array([1.0, 0.0])
        b = np.array([np.cos(0.6), np.sin(0.6)])
        c = np.array([np.cos(1.2), np.sin(1.2)])
        # a-b and b-c link, a-c does not
        assert cluster_by_threshold(np.vstack([a, b, c]), 0.8) == [[0, 1, 2]]

    def test_empty(self):
        assert cluster_by_threshold(np.zeros((0, 4)), 0.72) == []


class TestThemingEngine:
    """Test clustering with k-anonymity gating."""

    def test_empty_input(self, engine):
        report = engine.cluster([], 5)
        assert report.status == ThemeStatus.OK
        assert report.themes == []

    def test_visible_and_suppressed_themes(self, engine):
        big = _posts("deadline pressure sprint scope creep", [f"h{i}" for i in range(6)], channel="eng")
        small = _posts("meeting overhead calendar standup recurring", ["x1", "x2", "x3"])
        report = engine.cluster(big + small, 5)

        assert report.status == ThemeStatus.OK
        assert len(report.themes) == 2
        visible = [theme for theme in report.themes if theme.is_visible]
        suppressed = [theme for theme in report.themes if not theme.is_visible]
        assert len(visible) == 1
        assert len(suppressed) == 1

        theme = visible[0]
        assert "deadline" in theme.top_terms
        assert theme.label.startswith("Deadline pressure")
        assert theme.channels == ["eng"]
        assert 0 < len(theme.exemplar_quotes) <= 3
        assert set(theme.dept_hits) == {"unknown"}

    def test_small_departments_fold_into_unknown(self, engine):
        posts = _posts("deadline pressure sprint scope creep", [f"h{i}" for i in range(7)])
        departments = ["eng"] * 5 + ["legal", None]
        posts = [replace(post, department=dept) for post, dept in zip(posts, departments, strict=True)]

        theme = engine.cluster(posts, 5).themes[0]
        assert theme.is_visible
        assert set(theme.dept_hits) == {"eng", "unknown"}
        assert "legal" not in theme.to_dict()["dept_hits"]

    def test_department_needs_distinct_people(self, engine):
        posts = _posts("deadline pressure sprint scope creep", [f"h{i}" for i in range(6)])
        # Five posts from "legal", all by the same person
        posts = [replace(post, department="legal", handle="h0") for post in posts[:5]] + posts[5:]
        posts += _posts("deadline pressure sprint scope creep", ["h6", "h7", "h8"])

        theme = engine.cluster(posts, 5).themes[0]
        assert theme.is_visible
        assert set(theme.dept_hits) == {"unknown"}

    def test_small_channels_dropped(self, engine):
        posts = _posts("deadline pressure sprint scope creep", [f"h{i}" for i in range(6)])
        channels = ["eng"] * 5 + ["hr-private"]
        posts = [replace(post, channel=channel) for post, channel in zip(posts, channels, strict=True)]

        theme = engine.cluster(posts, 5).themes[0]
        assert theme.channels == ["eng"]
        assert "hr-private" not in theme.summary

    def test_suppressed_theme_exposes_only_count(self, engine):
        big = _posts("deadline pressure sprint scope creep", [f"h{i}" for i in range(6)])
        small = _posts("meeting overhead calendar standup recurring", ["x1", "x2", "x3"])
        report = engine.cluster(big + small, 5)

        suppressed = next(theme for theme in report.themes if not theme.is_visible)
        assert set(suppressed.to_dict()) == {"render_state", "posts_count"}
        assert suppressed.to_dict()["render_state"] == "suppressed"

    def test_insufficient_data_suppresses_everything(self, engine):
        posts = _posts("deadline pressure sprint scope creep", ["h1", "h2", "h1", "h2"])
        report = engine.cluster(posts, 5)

        assert report.status == ThemeStatus.INSUFFICIENT_DATA
        assert report.themes
        assert all(not theme.is_visible for theme in report.themes)
        assert report.to_dict()["status"] == "insufficient_data"

    def test_quotes_only_from_visible_threads(self, engine):
        posts = _posts(
            "deadline pressure sprint scope creep",
            [f"h{i}" for i in range(6)],
            state=RenderState.SUPPRESSED,
        )
        report = engine.cluster(posts, 5)

        theme = report.themes[0]
        assert theme.is_visible
        assert theme.exemplar_quotes == []

    def test_quotes_are_sanitized_and_capped(self, rng):
        engine = ThemingEngine(max_quotes=2, rng=rng)
        posts = [
            ThemePost(
                text=f"deadline pressure sprint scope creep mail me at p{i}@corp.com",
                handle=f"h{i}",
                thread_id=f"t-{i}",
                thread_state=RenderState.VISIBLE,
            )
            for i in range(6)
        ]
        theme = engine.cluster(posts, 5).themes[0]
        assert theme.exemplar_quotes == ["deadline pressure sprint scope creep mail me at [email]"]

    def test_general_friction_bucket(self, engine):
        texts = [
            "parking garage lighting broken",
            "vending machine empty snacks",
            "laptop battery swelling dangerously",
            "onboarding documentation outdated links",
            "office temperature freezing mornings",
        ]
        posts = [
            ThemePost(text=text, handle=f"h{i}", thread_id=f"t-{i}", thread_state=RenderState.VISIBLE)
            for i, text in enumerate(texts)
        ]
        report = engine.cluster(posts, 5)

        assert len(report.themes) == 1
        theme = report.themes[0]
        assert theme.label == GENERAL_FRICTION_LABEL
        assert theme.summary.endswith("No single sub-topic meets k this period.")

    def test_small_leftovers_dropped(self, engine):
        posts = [
            ThemePost(text=text, handle=f"h{i}", thread_id=f"t-{i}")
            for i, text in enumerate(["parking garage lighting", "vending machine snacks"])
        ]
        assert engine.cluster(posts, 5).themes == []

    def test_theme_counts_are_noised_non_negative(self, engine):
        posts = _posts("deadline pressure sprint scope creep", [f"h{i}" for i in range(6)])
        for _ in range(20):
            theme = engine.cluster(posts, 5).themes[0]
            assert theme.posts_count >= 0
            assert all(count >= 0 for count in theme.dept_hits.values())
