# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Murmur Contributors

"""Murmur - privacy gate for anonymous team feedback.

Murmur sits between raw submitted feedback and anything an admin, export,
or digest can see. It decides whether aggregated feedback may be revealed
and blurs the numbers and timings that could re-identify a submitter.

Architecture:
  Submission (raw text + raw identity, transient)
    → Sanitizer (PII patterns replaced, irreversible)
    → Pseudonymizer (rotating keyed handle, raw identity dropped)
    → Participation store (distinct handles per aggregation unit)
    → Render-state evaluator (k-anonymity gate, on every read path)
    → Noise injector (Laplace noise on every exposed count)
    → UI payload / export / digest

Key design principles:
  - Fail closed: a missing org salt or a bad epsilon refuses to answer.
  - Suppression is data, not an error.
  - One gate for every surface: the UI, exports and digests all read
    through ``PrivacyGate.view_unit``.
"""

__version__ = "1.0.0"

from . import (
    core as core,
)
from . import (
    privacy as privacy,
)
