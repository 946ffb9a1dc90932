from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

from inviteflow.links import (
    event_join_url,
    event_response_urls,
    invitation_links,
    signin_redirect_url,
)
from inviteflow.models import Event, Invitation
from inviteflow.utils import emails_match, normalize_email, to_naive_utc, utcnow


def test_utcnow_is_naive():
    assert utcnow().tzinfo is None


def test_to_naive_utc_converts_aware_values():
    aware = datetime(2030, 1, 1, 18, 0, tzinfo=timezone(timedelta(hours=2)))
    assert to_naive_utc(aware) == datetime(2030, 1, 1, 16, 0)
    naive = datetime(2030, 1, 1, 18, 0)
    assert to_naive_utc(naive) is naive
    assert to_naive_utc(None) is None
    assert to_naive_utc(datetime(2030, 1, 1, tzinfo=UTC)).tzinfo is None


def test_email_helpers():
    assert normalize_email("  Mixed@Case.COM ") == "mixed@case.com"
    assert normalize_email(None) == ""
    assert emails_match("A@b.com", "a@B.com ")
    assert not emails_match("", "")
    assert not emails_match("a@b.com", "c@d.com")


def test_invitation_links_prefer_short_code():
    invitation = Invitation(id="inv-1", short_code="K7M2PQ")
    links = invitation_links(invitation, base_url="https://rsvp.example/")
    assert links["invite_url"] == "https://rsvp.example/invites/K7M2PQ"
    assert set(links) == {"invite_url", "quick_response_urls"}
    assert links["quick_response_urls"] == {
        "yes": "https://rsvp.example/i/K7M2PQ/respond/yes",
        "no": "https://rsvp.example/i/K7M2PQ/respond/no",
        "maybe": "https://rsvp.example/i/K7M2PQ/respond/maybe",
    }

    legacy = Invitation(id="inv-2", short_code=None)
    assert invitation_links(legacy, base_url="https://rsvp.example")[
        "invite_url"
    ].endswith("/invites/inv-2")


def test_event_join_url():
    assert event_join_url(Event(invite_code=None)) is None
    assert (
        event_join_url(Event(invite_code="ABC23456"), base_url="https://rsvp.example")
        == "https://rsvp.example/j/ABC23456"
    )


def test_event_response_urls_fall_back_to_event_id():
    coded = Event(id="evt-1", invite_code="ABC23456")
    assert event_response_urls(coded, base_url="https://rsvp.example/") == {
        "yes": "https://rsvp.example/e/ABC23456/respond/yes",
        "no": "https://rsvp.example/e/ABC23456/respond/no",
        "maybe": "https://rsvp.example/e/ABC23456/respond/maybe",
    }
    uncoded = Event(id="evt-2", invite_code=None)
    assert event_response_urls(uncoded, base_url="https://rsvp.example")["no"] == (
        "https://rsvp.example/e/evt-2/respond/no"
    )


def test_signin_redirect_url_drops_empty_values():
    url = signin_redirect_url("/j/ABC23456", code="ABC23456", intended_response="")
    assert url == "/auth/signin?next=%2Fj%2FABC23456&code=ABC23456"
