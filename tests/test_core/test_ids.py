"""
Tests for consent_ledger.core.ids.
"""

from __future__ import annotations

from unittest.mock import patch

from consent_ledger.core.ids import EPOCH_MS, create_id_generator, generate_id


class TestGenerateId:
    """Tests for prefixed id generation."""

    def test_prefix(self):
        assert generate_id("cns").startswith("cns_")

    def test_shape(self):
        identifier = generate_id("sub")
        prefix, body = identifier.split("_", 1)

        assert prefix == "sub"
        assert len(body) == 32
        int(body, 16)

    def test_unique(self):
        ids = {generate_id("rec") for _ in range(1000)}
        assert len(ids) == 1000

    def test_time_ordered(self):
        """Ids from a later millisecond sort after earlier ones."""
        with patch("consent_ledger.core.ids.time.time", return_value=(EPOCH_MS + 1_000) / 1000):
            earlier = generate_id("log")
        with patch("consent_ledger.core.ids.time.time", return_value=(EPOCH_MS + 2_000) / 1000):
            later = generate_id("log")

        assert earlier < later

    def test_before_epoch_clamps_to_zero(self):
        with patch("consent_ledger.core.ids.time.time", return_value=0):
            identifier = generate_id("dom")

        assert identifier.startswith("dom_00000000000")


class TestCreateIdGenerator:
    """Tests for per-prefix generators."""

    def test_generator_uses_prefix(self):
        generate = create_id_generator("pur")

        assert generate().startswith("pur_")
        assert generate() != generate()

    def test_generator_name(self):
        assert create_id_generator("pjn").__name__ == "generate_pjn_id"
