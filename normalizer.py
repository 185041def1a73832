"""
Spec normalization: map parsed spec rows onto the canonical field set.

Every canonical field starts empty. For each row the bare label is looked up
first, then the "{group}: {label}" composite; rows matching neither are
unmapped. Later rows overwrite earlier ones for the same field.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from field_map import lookup
from models import SPEC_FIELD_NAMES
from parser import SpecRow

logger = logging.getLogger(__name__)


@dataclass
class NormalizedSpecs:
    """Canonical fields plus bookkeeping about how they were filled."""

    fields: dict[str, str | None] = field(default_factory=lambda: dict.fromkeys(SPEC_FIELD_NAMES))
    # Unmapped rows keyed by composite label
    extra_fields: dict[str, str] = field(default_factory=dict)
    # Which key tier resolved each filled field: "bare" or "composite"
    resolved_by: dict[str, str] = field(default_factory=dict)

    @property
    def filled_fields(self) -> list[str]:
        return [name for name in SPEC_FIELD_NAMES if self.fields.get(name)]

    @property
    def missing_fields(self) -> list[str]:
        return [name for name in SPEC_FIELD_NAMES if not self.fields.get(name)]

    @property
    def is_empty(self) -> bool:
        return not self.filled_fields


def normalize_specs(rows: Iterable[SpecRow], keep_unmapped: bool = True) -> NormalizedSpecs:
    """Translate spec rows into canonical fields."""
    result = NormalizedSpecs()

    for row in rows:
        target = lookup(row.bare_key)
        tier = "bare"
        if target is None:
            target = lookup(row.composite_key)
            tier = "composite"

        if target is None:
            if keep_unmapped:
                result.extra_fields[row.composite_key] = row.value
            continue

        result.fields[target] = row.value
        result.resolved_by[target] = tier

    if result.extra_fields:
        logger.debug(f"Unmapped spec labels: {sorted(result.extra_fields)}")
    return result
