"""Tests for outbound composition of bot replies."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from helpers import TEST_SENDER
from warelay.bot.models import BotReply
from warelay.infra.menu_store import MenuStore
from warelay.whatsapp.composer import OutboundComposer, UnsupportedReplyError, new_menu_id


def _postbacks(count, label="Option"):
    return [
        {"type": "postback", "label": f"{label} {index}", "postback": {"action": f"a{index}"}}
        for index in range(1, count + 1)
    ]


def _reply(**fields):
    return BotReply.model_validate({"userId": TEST_SENDER, "type": "text", **fields})


@pytest.fixture
def menu_store():
    return MenuStore()


@pytest.fixture
def attachments():
    pipeline = MagicMock()
    pipeline.outbound_media = AsyncMock(
        return_value=("image", {"link": "https://cdn.example.com/p.jpg", "caption": "Pic"})
    )
    return pipeline


@pytest.fixture
def composer(menu_store, attachments):
    return OutboundComposer(menu_store, attachments, menu_id_factory=lambda: "menu_test")


class TestMenuId:
    def test_menu_ids_unique(self):
        assert new_menu_id() != new_menu_id()
        assert new_menu_id().startswith("menu_")


class TestShapeSelection:
    async def test_plain_text(self, composer):
        payload = await composer.compose(_reply(text="Hello"))
        assert payload["type"] == "text"
        assert payload["to"] == TEST_SENDER
        assert payload["text"] == {"body": "Hello", "preview_url": False}

    @pytest.mark.parametrize("count", [1, 3])
    async def test_up_to_three_postbacks_are_buttons(self, composer, count):
        payload = await composer.compose(_reply(text="Pick", actions=_postbacks(count)))
        interactive = payload["interactive"]
        assert interactive["type"] == "button"
        assert interactive["body"] == {"text": "Pick"}
        buttons = interactive["action"]["buttons"]
        assert [button["reply"]["id"] for button in buttons] == [
            f"menu_test|a{index}" for index in range(1, count + 1)
        ]
        assert all(button["type"] == "reply" for button in buttons)

    @pytest.mark.parametrize("count", [4, 10])
    async def test_four_to_ten_postbacks_are_a_list(self, composer, count):
        payload = await composer.compose(_reply(text="Pick", actions=_postbacks(count)))
        interactive = payload["interactive"]
        assert interactive["type"] == "list"
        assert interactive["action"]["button"] == "Select one"
        (section,) = interactive["action"]["sections"]
        assert len(section["rows"]) == count
        assert section["rows"][0] == {"id": "menu_test|a1", "title": "Option 1"}

    async def test_eleven_postbacks_become_numbered_text(self, composer, menu_store):
        payload = await composer.compose(_reply(text="Pick", actions=_postbacks(11)))
        assert payload["type"] == "text"
        lines = payload["text"]["body"].split("\n")
        numbered = [line for line in lines if line[:1].isdigit()]
        assert len(numbered) == 11
        assert numbered[0] == "1. Option 1"
        assert numbered[-1] == "11. Option 11"
        assert menu_store.get_session("menu_test") is None

    async def test_global_actions_count_as_postbacks(self, composer):
        payload = await composer.compose(
            _reply(text="Pick", actions=_postbacks(2), globalActions=_postbacks(2, "Global"))
        )
        assert payload["interactive"]["type"] == "list"

    async def test_unsupported_reply_raises(self, composer):
        with pytest.raises(UnsupportedReplyError):
            await composer.compose(_reply(type="card"))


class TestLabels:
    async def test_long_button_label_truncated(self, composer):
        label = "A" * 25
        actions = [{"type": "postback", "label": label, "postback": {"action": "x"}}]
        payload = await composer.compose(_reply(text="Pick", actions=actions))
        title = payload["interactive"]["action"]["buttons"][0]["reply"]["title"]
        assert title == "A" * 16 + "..."

    async def test_button_label_at_limit_kept(self, composer):
        actions = [{"type": "postback", "label": "B" * 20, "postback": {"action": "x"}}]
        payload = await composer.compose(_reply(text="Pick", actions=actions))
        assert payload["interactive"]["action"]["buttons"][0]["reply"]["title"] == "B" * 20

    async def test_long_list_label_truncated(self, composer):
        actions = _postbacks(3) + [
            {"type": "postback", "label": "C" * 25, "postback": {"action": "long"}},
            {"type": "postback", "label": "D" * 24, "postback": {"action": "limit"}},
        ]
        payload = await composer.compose(_reply(text="Pick", actions=actions))
        rows = payload["interactive"]["action"]["sections"][0]["rows"]
        assert rows[3]["title"] == "C" * 20 + "..."
        assert rows[4]["title"] == "D" * 24

    async def test_label_used_when_postback_has_no_action(self, composer):
        actions = [{"type": "postback", "label": "Yes"}]
        payload = await composer.compose(_reply(text="Pick", actions=actions))
        assert payload["interactive"]["action"]["buttons"][0]["reply"]["id"] == "menu_test|Yes"


class TestOtherActions:
    async def test_url_and_call_inlined_in_interactive_body(self, composer):
        actions = _postbacks(2) + [
            {"type": "url", "label": "Site", "url": "https://example.com"},
            {"type": "call", "label": "Call us", "phoneNumber": "+15550100"},
            {"type": "share", "label": "Share"},
        ]
        payload = await composer.compose(_reply(text="Pick", actions=actions))
        body = payload["interactive"]["body"]["text"]
        assert "Site: https://example.com" in body
        assert "Call us: +15550100" in body
        assert "Share" not in body
        assert len(payload["interactive"]["action"]["buttons"]) == 2

    async def test_only_url_actions_make_text_with_preview(self, composer):
        actions = [{"type": "url", "label": "Docs", "url": "https://example.com/docs"}]
        payload = await composer.compose(_reply(text="Read this", actions=actions))
        assert payload["type"] == "text"
        assert payload["text"]["body"] == "Read this\n\nDocs: https://example.com/docs"
        assert payload["text"]["preview_url"] is True

    async def test_header_and_footer(self, composer):
        payload = await composer.compose(
            _reply(text="Pick", headerText="Menu", footerText="Bye", actions=_postbacks(2))
        )
        assert payload["interactive"]["header"] == {"type": "text", "text": "Menu"}
        assert payload["interactive"]["footer"] == {"text": "Bye"}


class TestCards:
    async def test_card_with_postbacks_uses_image_header(self, composer):
        reply = _reply(
            type="card",
            cards=[
                {
                    "title": "Room",
                    "imageUrl": "https://cdn.example.com/room.jpg",
                    "actions": _postbacks(2),
                }
            ],
        )
        payload = await composer.compose(reply)
        interactive = payload["interactive"]
        assert interactive["type"] == "button"
        assert interactive["body"] == {"text": "Room"}
        assert interactive["header"] == {
            "type": "image",
            "image": {"link": "https://cdn.example.com/room.jpg"},
        }

    async def test_cards_without_postbacks_become_text(self, composer):
        reply = _reply(
            type="card",
            cards=[
                {"title": "One", "description": "First"},
                {"title": "Two", "url": "https://example.com/two"},
            ],
        )
        payload = await composer.compose(reply)
        assert payload["type"] == "text"
        assert payload["text"]["body"] == "One\nFirst\n\nTwo\nhttps://example.com/two"


class TestLocationAndAttachment:
    async def test_location_from_channel_extensions(self, composer):
        reply = _reply(
            text="Here",
            channelExtensions={
                "special_field_type": "location",
                "location": json.dumps({"latitude": "-23.5", "longitude": -46.6, "name": "HQ"}),
            },
        )
        payload = await composer.compose(reply)
        assert payload["type"] == "location"
        assert payload["location"] == {"latitude": -23.5, "longitude": -46.6, "name": "HQ"}

    async def test_invalid_location_falls_back_to_text(self, composer):
        reply = _reply(
            text="Here",
            channelExtensions={"special_field_type": "location", "location": "not json"},
        )
        payload = await composer.compose(reply)
        assert payload["type"] == "text"

    async def test_attachment_delegated(self, composer, attachments):
        reply = _reply(
            type="attachment",
            attachment={"type": "image", "url": "https://cdn.example.com/p.jpg", "title": "Pic"},
        )
        payload = await composer.compose(reply)
        attachments.outbound_media.assert_awaited_once_with(
            "image", "https://cdn.example.com/p.jpg", "Pic"
        )
        assert payload["type"] == "image"
        assert payload["image"]["link"] == "https://cdn.example.com/p.jpg"


class TestMenuRegistration:
    async def test_interactive_registered(self, composer, menu_store):
        payload = await composer.compose(_reply(text="Pick", actions=_postbacks(2)))
        session = menu_store.get_session("menu_test")
        assert session.payload == payload
        assert menu_store.get_last_menu(TEST_SENDER) == payload

    async def test_each_menu_gets_own_id(self, menu_store, attachments):
        composer = OutboundComposer(menu_store, attachments)
        first = await composer.compose(_reply(text="Pick", actions=_postbacks(2)))
        second = await composer.compose(_reply(text="Pick", actions=_postbacks(2)))
        first_id = first["interactive"]["action"]["buttons"][0]["reply"]["id"]
        second_id = second["interactive"]["action"]["buttons"][0]["reply"]["id"]
        assert first_id.split("|")[0] != second_id.split("|")[0]
        assert menu_store.get_last_menu(TEST_SENDER) == second
