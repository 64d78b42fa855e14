"""Tests for relay-generated texts."""

import pytest

from warelay.whatsapp.templates import menu_changed_notice, render
from warelay.whatsapp.wire import truncate_label


class TestRender:
    def test_unknown_template(self):
        with pytest.raises(ValueError, match="Unknown template"):
            render("nope", {})

    def test_disallowed_param(self):
        with pytest.raises(ValueError, match="Disallowed"):
            render("menu_changed_notice", {"previous": "a", "current": "b", "phone": "x"})

    def test_missing_param(self):
        with pytest.raises(ValueError, match="Missing"):
            render("menu_changed_notice", {"previous": "a"})

    def test_notice_mentions_both_choices(self):
        text = menu_changed_notice("Reservations", "Billing")
        assert "Reservations" in text
        assert "Billing" in text

    def test_notice_without_previous_label(self):
        assert "a previous option" in menu_changed_notice(None, "Billing")


class TestTruncateLabel:
    def test_within_limit(self):
        assert truncate_label("short", 20, 16) == "short"

    def test_over_limit(self):
        assert truncate_label("x" * 21, 20, 16) == "x" * 16 + "..."
