"""Tests for the admin UI payload, export and digest surfaces.

All three must agree on the render state of a unit for the same counts.
"""

from __future__ import annotations

import csv
import io
import json

import pytest

from murmur.core.exceptions import ValidationException
from murmur.privacy.surfaces import (
    DIGEST_THREADS_PER_TOPIC,
    EXPORT_FIELDS,
    ExportFormat,
    build_digest,
    build_export,
    build_ui_payload,
    k_safety_banner,
)
from murmur.privacy.types import RenderState


class TestKSafetyBanner:
    def test_message_names_threshold(self):
        banner = k_safety_banner(5)
        assert banner["variant"] == "warning"
        assert banner["k_threshold"] == 5
        assert "minimum 5 required" in banner["message"]


class TestSurfaceParity:
    """UI, export and digest apply the same gate to the same counts."""

    @pytest.mark.parametrize(("participants", "expected"), [(3, RenderState.SUPPRESSED), (5, RenderState.VISIBLE)])
    def test_all_surfaces_agree(self, gate, submit_from, participants, expected):
        submit_from(gate, participants)

        payload = build_ui_payload(gate, "thread-1", "org-1")
        export = build_export(gate, "org-1")
        digest = build_digest(gate, "org-1")

        assert payload["render_state"] == expected.value
        assert export.render_states == {"thread-1": expected}
        assert digest.render_states == {"thread-1": expected}

    def test_suppressed_everywhere_hides_content(self, gate, submit_from):
        submit_from(gate, 3)

        payload = build_ui_payload(gate, "thread-1", "org-1")
        assert payload["k_safety_banner"] == k_safety_banner(5)
        assert "items" not in payload

        export = build_export(gate, "org-1")
        assert len(export.rows) == 1
        row = export.rows[0]
        assert row["text"] is None
        assert row["handle"] is None
        assert row["participant_count"] is None
        assert row["message"].startswith("Not enough data yet")

        digest = build_digest(gate, "org-1")
        assert digest.is_empty
        assert digest.suppressed_count == 1

    def test_visible_everywhere_shows_content(self, gate, submit_from):
        submit_from(gate, 5)

        payload = build_ui_payload(gate, "thread-1", "org-1")
        assert payload["k_safety_banner"] is None
        assert len(payload["items"]) == 5

        export = build_export(gate, "org-1")
        assert len(export.rows) == 5
        assert all(row["text"] for row in export.rows)

        digest = build_digest(gate, "org-1")
        assert digest.total_threads == 1
        assert digest.suppressed_count == 0

    @pytest.mark.parametrize("participants", [3, 5])
    def test_no_surface_leaks_pii(self, gate, participants):
        for i in range(participants):
            gate.ingest("org-1", f"U{i}", f"mail a@b.com or @joe, 555-123-4567 about deploys {i}", "thread-1")

        payload = build_ui_payload(gate, "thread-1", "org-1")
        digest = build_digest(gate, "org-1")
        bodies = [
            json.dumps(payload),
            build_export(gate, "org-1", fmt="csv").content,
            build_export(gate, "org-1", fmt="json").content,
            json.dumps(digest.to_dict()),
            digest.render_text(),
        ]

        expected = RenderState.VISIBLE if participants == 5 else RenderState.SUPPRESSED
        assert payload["render_state"] == expected.value
        for body in bodies:
            assert "@b.com" not in body
            assert "@joe" not in body
            assert "123-4567" not in body
        if expected == RenderState.VISIBLE:
            assert all("[email]" in item["text"] for item in payload["items"])
            assert digest.total_threads == 1


class TestExport:
    def test_csv(self, gate, submit_from):
        submit_from(gate, 3, unit_id="quiet")
        submit_from(gate, 5, unit_id="loud")
        export = build_export(gate, "org-1", fmt="csv")

        assert export.media_type == "text/csv"
        reader = csv.DictReader(io.StringIO(export.content))
        assert reader.fieldnames == EXPORT_FIELDS
        rows = list(reader)
        assert len(rows) == 6
        quiet = [row for row in rows if row["unit_id"] == "quiet"]
        assert quiet[0]["text"] == ""
        assert quiet[0]["render_state"] == "suppressed"

    def test_json(self, gate, submit_from):
        submit_from(gate, 5)
        export = build_export(gate, "org-1", fmt=ExportFormat.JSON)

        assert export.media_type == "application/json"
        data = json.loads(export.content)
        assert len(data["rows"]) == 5
        assert data["rows"][0]["render_state"] == "visible"

    def test_unit_filter(self, gate, submit_from):
        submit_from(gate, 5, unit_id="a")
        submit_from(gate, 5, unit_id="b")
        export = build_export(gate, "org-1", unit_ids=["b"])
        assert set(export.render_states) == {"b"}

    def test_handles_not_identities(self, gate, submit_from):
        submit_from(gate, 5)
        content = build_export(gate, "org-1").content
        assert "U0001" not in content
        assert "anon-" in content

    def test_unsupported_format(self, gate):
        with pytest.raises(ValidationException):
            build_export(gate, "org-1", fmt="xlsx")


class TestDigest:
    def test_groups_by_topic(self, gate, submit_from):
        submit_from(gate, 5, unit_id="a", topic="Process")
        submit_from(gate, 5, unit_id="b", topic="Tooling")
        submit_from(gate, 5, unit_id="c")
        digest = build_digest(gate, "org-1")

        assert [topic.name for topic in digest.topics] == ["Process", "Tooling", "General"]
        assert digest.to_dict()["total_threads"] == 3

    def test_render_text_truncates_topics(self, gate, submit_from):
        for i in range(DIGEST_THREADS_PER_TOPIC + 2):
            submit_from(gate, 5, unit_id=f"thread-{i:02d}", topic="Process")
        text = build_digest(gate, "org-1").render_text("Acme")

        assert text.startswith("*Weekly Feedback Digest for Acme*")
        assert "*Process* (7 threads)" in text
        assert "_...and 2 more threads_" in text
        assert text.count("• Thread #") == DIGEST_THREADS_PER_TOPIC

    def test_to_dict_caps_topics(self, gate, submit_from):
        for i in range(DIGEST_THREADS_PER_TOPIC + 2):
            submit_from(gate, 5, unit_id=f"thread-{i:02d}", topic="Process")
        data = build_digest(gate, "org-1").to_dict()

        topic = data["topics"][0]
        assert len(topic["threads"]) == DIGEST_THREADS_PER_TOPIC
        assert topic["thread_count"] == DIGEST_THREADS_PER_TOPIC + 2
        assert topic["hidden"] == 2
        assert data["total_threads"] == DIGEST_THREADS_PER_TOPIC + 2

    def test_small_topic_hides_nothing(self, gate, submit_from):
        submit_from(gate, 5, unit_id="a", topic="Process")
        topic = build_digest(gate, "org-1").to_dict()["topics"][0]
        assert topic["hidden"] == 0
        assert len(topic["threads"]) == 1

    def test_quotes_are_coarsened(self, gate):
        for i in range(5):
            gate.ingest("org-1", f"U{i}", f"On Friday at 4pm ticket 99812 blocked us, {i}", "t-1")
        digest = build_digest(gate, "org-1")
        quotes = digest.topics[0].threads[0].exemplar_quotes
        assert quotes
        assert all("Friday" not in quote and "99812" not in quote for quote in quotes)

    def test_empty_digest(self, gate):
        digest = build_digest(gate, "org-1")
        assert digest.is_empty
        assert digest.to_dict()["topics"] == []
