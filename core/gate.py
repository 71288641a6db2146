"""Submission Gate.

``ready`` is a pure AND over the required fields. While ready, the deep link
and the simulation request are re-derived from the snapshot on every
evaluation; the same snapshot always yields the same artifacts.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from core.fields import REQUIRED_FIELDS, FieldId, FieldState, Value
from core.persistence import build_deep_link, build_simulation_request

logger = logging.getLogger(__name__)


def is_ready(fields: Mapping[FieldId, FieldState]) -> bool:
    return all(fields[field_id].is_valid for field_id in REQUIRED_FIELDS)


class SubmissionGate:
    def __init__(self, site_url: str):
        self.site_url = site_url
        self.ready = False
        self.deep_link: str | None = None
        self.request: dict[str, Any] | None = None
        self.transitions = 0

    def evaluate(
        self,
        snapshot: Mapping[str, Value],
        fields: Mapping[FieldId, FieldState],
        enable_optimisation: bool = True,
    ) -> bool:
        ready = is_ready(fields)
        if ready != self.ready:
            self.transitions += 1
            logger.info("submission %s", "enabled" if ready else "disabled")
        self.ready = ready

        if ready:
            self.deep_link = build_deep_link(self.site_url, snapshot)
            self.request = build_simulation_request(snapshot, enable_optimisation)
        else:
            self.deep_link = None
            self.request = None
        return ready
