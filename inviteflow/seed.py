"""Development helpers for populating fake users, events and invitations."""

from __future__ import annotations

import random
from datetime import datetime, timedelta

from faker import Faker
from sqlalchemy.orm import Session

from . import workflows
from .crud import create_profile, get_profile_by_email, set_invitation_status
from .database import get_session
from .identity import Identity
from .models import Invitation, Profile
from .storage import init_db
from .utils import utcnow

_event_types = [
    "Birthday Party",
    "Dinner",
    "Game Night",
    "Book Club",
    "Housewarming",
    "Picnic",
    "Workshop",
    "Launch Party",
]
_responses = ["pending", "pending", "yes", "yes", "maybe", "no"]


def seed_fake_data(
    *,
    user_count: int = 5,
    events_per_user: int = 2,
    max_invitations_per_event: int = 4,
) -> dict[str, int]:
    """Populate the database with synthetic users, events and invitations."""
    if user_count < 1:
        raise ValueError("user_count must be >= 1")
    if events_per_user < 0:
        raise ValueError("events_per_user must be >= 0")
    if max_invitations_per_event < 0:
        raise ValueError("max_invitations_per_event must be >= 0")

    init_db()
    fake = Faker()
    stats = {"users": 0, "events": 0, "invitations": 0}

    with get_session() as session:
        profiles = [_create_profile(session, fake) for _ in range(user_count)]
        stats["users"] = len(profiles)
        for owner in profiles:
            guests = [profile for profile in profiles if profile.id != owner.id]
            for _ in range(events_per_user):
                stats["invitations"] += _create_event(
                    session,
                    fake,
                    owner=owner,
                    guests=guests,
                    max_invitations=max_invitations_per_event,
                )
                stats["events"] += 1

    return stats


def _create_profile(session: Session, fake: Faker) -> Profile:
    for _ in range(20):
        email = fake.unique.email()
        if get_profile_by_email(session, email):
            continue
        return create_profile(session, email=email, full_name=fake.name())
    raise RuntimeError("Failed to create a unique profile email")


def _create_event(
    session: Session,
    fake: Faker,
    *,
    owner: Profile,
    guests: list[Profile],
    max_invitations: int,
) -> int:
    identity = Identity.from_profile(owner)
    created = workflows.create_event(
        session,
        identity,
        title=f"{fake.city()} {random.choice(_event_types)}",
        description="\n\n".join(fake.paragraphs(nb=2)),
        event_date=_random_event_date(),
        location=fake.address().replace("\n", ", "),
    ).unwrap()
    event_id = created["event"]["id"]
    if random.random() < 0.7:
        workflows.generate_invite_code(session, event_id, identity).unwrap()
    return _create_invitations(session, fake, event_id, identity, guests, max_invitations)


def _random_event_date() -> datetime:
    day_offset = random.randint(-7, 45)
    minute_offset = random.randint(0, 23 * 60)
    return utcnow() + timedelta(days=day_offset, minutes=minute_offset)


def _create_invitations(
    session: Session,
    fake: Faker,
    event_id: str,
    identity: Identity,
    guests: list[Profile],
    max_invitations: int,
) -> int:
    if max_invitations <= 0:
        return 0
    total = random.randint(0, max_invitations)
    # Mix registered users with addresses that have no account yet.
    pool = [(guest.email, guest.full_name) for guest in guests]
    pool += [(fake.unique.email(), fake.name()) for _ in range(total)]
    random.shuffle(pool)
    for email, name in pool[:total]:
        created = workflows.create_invitation(
            session, event_id, email, name, identity
        ).unwrap()
        invitation = session.get(Invitation, created["invitation_id"])
        status = random.choice(_responses)
        if status != "pending":
            set_invitation_status(session, invitation=invitation, status=status)
    return total
