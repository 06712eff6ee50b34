import uuid
from datetime import datetime, timedelta, timezone
from itertools import combinations

import pytest
from sqlalchemy import func, select

from campus_booking.core.config import settings
from campus_booking.models import Booking, BookingStatus
from campus_booking.services.audit import history
from campus_booking.services.bookings import (
    accept_booking,
    cancel_booking,
    complete_booking,
    create_booking,
    get_booking,
    list_bookings,
    read_booking,
    reopen_booking,
    reschedule_booking,
)
from campus_booking.services.conflicts import BOOKING_OCCUPYING_STATUSES
from campus_booking.services.errors import (
    Forbidden,
    InvalidFormat,
    InvalidRange,
    InvalidTransition,
    MissingRequiredField,
    NotFound,
    SlotConflict,
)
from campus_booking.services.time_window import overlaps

DAY = datetime(2030, 1, 7, tzinfo=timezone.utc)
BEFORE = DAY - timedelta(days=1)


def at(hour, minute=0):
    return DAY.replace(hour=hour, minute=minute)


def book(db, start, end, provider="P1", requester="S1", **extra):
    values = {"topic": "Derivadas", "modality": "online"}
    values.update(extra)
    return create_booking(
        db, provider_id=provider, requester_id=requester, start=start, end=end, **values
    )


def booking_count(db):
    return db.execute(select(func.count()).select_from(Booking)).scalar_one()


def test_new_booking_starts_pending(db):
    booking = book(db, at(10), at(11), description="Repaso", notes="Traer apuntes")

    assert booking.status is BookingStatus.PENDING
    assert booking.start_at == at(10)
    assert booking.notes == "Traer apuntes"
    assert get_booking(db, booking.id) is booking


def test_overlap_rejected_touching_accepted(db):
    book(db, at(10), at(11))

    with pytest.raises(SlotConflict) as excinfo:
        book(db, at(10, 30), at(11, 30), requester="S2")
    third = book(db, at(11), at(12), requester="S3")

    assert excinfo.value.status_code == 409
    assert third.status is BookingStatus.PENDING
    assert booking_count(db) == 2


def test_other_provider_is_independent(db):
    book(db, at(10), at(11))
    other = book(db, at(10), at(11), provider="P2")

    assert other.provider_id == "P2"


def test_presencial_without_location_persists_nothing(db):
    with pytest.raises(MissingRequiredField):
        book(db, at(10), at(11), modality="presencial", location="  ")

    assert booking_count(db) == 0


def test_presencial_with_location_is_kept(db):
    booking = book(db, at(10), at(11), modality="presencial", location=" Aula 1.3 ")

    assert booking.location == "Aula 1.3"


@pytest.mark.parametrize(
    "kwargs, error",
    [
        ({"start": at(11), "end": at(10)}, InvalidRange),
        ({"start": at(10), "end": at(10)}, InvalidRange),
        ({"topic": " "}, MissingRequiredField),
        ({"topic": "x" * 201}, InvalidFormat),
        ({"modality": "hybrid"}, InvalidFormat),
        ({"provider_id": ""}, MissingRequiredField),
    ],
)
def test_create_validation(db, kwargs, error):
    values = {
        "provider_id": "P1",
        "requester_id": "S1",
        "start": at(10),
        "end": at(11),
        "topic": "Derivadas",
        "modality": "online",
    }
    values.update(kwargs)

    with pytest.raises(error):
        create_booking(db, **values)
    assert booking_count(db) == 0


def test_provider_accepts_pending(db):
    booking = book(db, at(10), at(11))

    accept_booking(db, booking.id, acting_provider_id="P1")

    assert booking.status is BookingStatus.CONFIRMED


def test_only_provider_can_accept(db):
    booking = book(db, at(10), at(11))

    with pytest.raises(Forbidden):
        accept_booking(db, booking.id, acting_provider_id="S1")
    assert booking.status is BookingStatus.PENDING


def test_accepting_twice_is_invalid(db):
    booking = book(db, at(10), at(11))
    accept_booking(db, booking.id, acting_provider_id="P1")

    with pytest.raises(InvalidTransition):
        accept_booking(db, booking.id, acting_provider_id="P1")


def test_unknown_booking_is_not_found(db):
    book(db, at(10), at(11))

    with pytest.raises(NotFound):
        accept_booking(db, uuid.uuid4(), acting_provider_id="P1")


def test_requester_cancels_and_slot_frees(db):
    booking = book(db, at(10), at(11))

    cancel_booking(db, booking.id, acting_user_id="S1", now=BEFORE)
    again = book(db, at(10), at(11), requester="S2")

    assert booking.status is BookingStatus.CANCELLED
    assert again.status is BookingStatus.PENDING
    assert booking_count(db) == 2


def test_cancelling_twice_is_an_invalid_transition(db):
    booking = book(db, at(10), at(11))
    cancel_booking(db, booking.id, acting_user_id="P1", now=BEFORE)

    with pytest.raises(InvalidTransition):
        cancel_booking(db, booking.id, acting_user_id="P1", now=BEFORE)
    assert booking.status is BookingStatus.CANCELLED


def test_stranger_cannot_cancel(db):
    booking = book(db, at(10), at(11))

    with pytest.raises(Forbidden):
        cancel_booking(db, booking.id, acting_user_id="S9", now=BEFORE)


def test_requester_cannot_cancel_started_session_but_provider_can(db):
    booking = book(db, at(10), at(11))
    accept_booking(db, booking.id, acting_provider_id="P1")

    with pytest.raises(InvalidTransition):
        cancel_booking(db, booking.id, acting_user_id="S1", now=at(10, 15))
    cancel_booking(db, booking.id, acting_user_id="P1", now=at(10, 15))

    assert booking.status is BookingStatus.CANCELLED


def test_failed_reschedule_leaves_booking_untouched(db):
    moving = book(db, at(10), at(11))
    book(db, at(12), at(13), requester="S2")
    accept_booking(db, moving.id, acting_provider_id="P1")

    with pytest.raises(SlotConflict):
        reschedule_booking(
            db, moving.id, acting_provider_id="P1", new_start=at(12, 30), new_end=at(13, 30)
        )

    db.expire_all()
    reloaded = get_booking(db, moving.id)
    assert reloaded.start_at == at(10)
    assert reloaded.end_at == at(11)
    assert reloaded.status is BookingStatus.CONFIRMED


def test_reschedule_may_overlap_its_own_range(db):
    booking = book(db, at(10), at(11))

    reschedule_booking(
        db, booking.id, acting_provider_id="P1", new_start=at(10, 30), new_end=at(11, 30)
    )

    assert booking.status is BookingStatus.RESCHEDULED
    assert booking.start_at == at(10, 30)


def test_rescheduled_booking_keeps_blocking_and_can_be_resolved(db):
    booking = book(db, at(10), at(11))
    accept_booking(db, booking.id, acting_provider_id="P1")
    reschedule_booking(
        db, booking.id, acting_provider_id="P1", new_start=at(14), new_end=at(15)
    )

    with pytest.raises(SlotConflict):
        book(db, at(14, 30), at(15), requester="S2")
    freed = book(db, at(10), at(11), requester="S2")

    reopen_booking(db, booking.id, acting_provider_id="P1")
    assert booking.status is BookingStatus.PENDING
    accept_booking(db, booking.id, acting_provider_id="P1")
    assert booking.status is BookingStatus.CONFIRMED
    assert freed.status is BookingStatus.PENDING


def test_requester_cannot_reschedule(db):
    booking = book(db, at(10), at(11))

    with pytest.raises(Forbidden):
        reschedule_booking(
            db, booking.id, acting_provider_id="S1", new_start=at(12), new_end=at(13)
        )


def test_reschedule_rejects_bad_range_and_terminal_states(db):
    booking = book(db, at(10), at(11))

    with pytest.raises(InvalidRange):
        reschedule_booking(
            db, booking.id, acting_provider_id="P1", new_start=at(13), new_end=at(12)
        )
    cancel_booking(db, booking.id, acting_user_id="P1", now=BEFORE)
    with pytest.raises(InvalidTransition):
        reschedule_booking(
            db, booking.id, acting_provider_id="P1", new_start=at(12), new_end=at(13)
        )


def test_complete_requires_confirmed_and_elapsed(db):
    booking = book(db, at(10), at(11))

    with pytest.raises(InvalidTransition):
        complete_booking(db, booking.id, now=at(12))
    accept_booking(db, booking.id, acting_provider_id="P1")
    with pytest.raises(InvalidTransition):
        complete_booking(db, booking.id, now=at(10, 30))
    complete_booking(db, booking.id, acting_user_id="P1", now=at(11))

    assert booking.status is BookingStatus.COMPLETED


def test_completed_booking_is_terminal(db):
    booking = book(db, at(10), at(11))
    accept_booking(db, booking.id, acting_provider_id="P1")
    complete_booking(db, booking.id, now=at(12))

    with pytest.raises(InvalidTransition):
        cancel_booking(db, booking.id, acting_user_id="P1", now=at(12))


def test_listing_completes_elapsed_confirmed_bookings(db):
    done = book(db, at(8), at(9))
    accept_booking(db, done.id, acting_provider_id="P1")
    waiting = book(db, at(10), at(11))
    upcoming = book(db, at(12), at(13))
    accept_booking(db, upcoming.id, acting_provider_id="P1")

    listed = list_bookings(db, provider_id="P1", now=at(11, 30))

    assert [item.id for item in listed] == [done.id, waiting.id, upcoming.id]
    assert done.status is BookingStatus.COMPLETED
    assert waiting.status is BookingStatus.PENDING
    assert upcoming.status is BookingStatus.CONFIRMED


def test_list_window_uses_half_open_overlap(db):
    book(db, at(8), at(9))
    inside = book(db, at(10), at(11))
    book(db, at(12), at(13))

    listed = list_bookings(
        db, requester_id="S1", window_start=at(9), window_end=at(12), now=BEFORE
    )

    assert [item.id for item in listed] == [inside.id]


def test_list_requires_an_owner(db):
    with pytest.raises(MissingRequiredField):
        list_bookings(db)


def test_reading_one_booking_completes_it_once_elapsed(db):
    booking = book(db, at(8), at(9))
    accept_booking(db, booking.id, acting_provider_id="P1")

    before = read_booking(db, booking.id, now=at(8, 30)).status
    after = read_booking(db, booking.id, now=at(9)).status

    assert before is BookingStatus.CONFIRMED
    assert after is BookingStatus.COMPLETED
    assert list_bookings(db, provider_id="P1", now=at(9))[0].status is after


def test_booking_list_is_paged(db, monkeypatch):
    monkeypatch.setattr(settings, "list_page_size", 2)
    first = book(db, at(8), at(9))
    second = book(db, at(10), at(11))
    third = book(db, at(12), at(13))

    page_one = list_bookings(db, provider_id="P1", now=BEFORE)
    page_two = list_bookings(db, provider_id="P1", page=2, now=BEFORE)
    single = list_bookings(db, provider_id="P1", limit=1, page=3, now=BEFORE)

    assert [item.id for item in page_one] == [first.id, second.id]
    assert [item.id for item in page_two] == [third.id]
    assert [item.id for item in single] == [third.id]
    with pytest.raises(InvalidRange):
        list_bookings(db, provider_id="P1", page=0, now=BEFORE)


def test_state_changes_are_audited(db):
    booking = book(db, at(10), at(11))
    accept_booking(db, booking.id, acting_provider_id="P1")
    cancel_booking(db, booking.id, acting_user_id="S1", now=BEFORE)
    db.flush()

    entries = history(db, f"booking:{booking.id}")

    assert [entry.action for entry in entries] == [
        "booking.created",
        "booking.confirmed",
        "booking.cancelled",
    ]
    assert [entry.actor for entry in entries] == ["S1", "P1", "S1"]
    assert entries[-1].metadata_json["by"] == "requester"


def test_no_two_occupying_bookings_overlap(db):
    attempts = [(9, 0, 10, 0), (9, 30, 10, 30), (10, 0, 11, 0), (10, 45, 11, 15), (11, 0, 11, 30)]
    for start_h, start_m, end_h, end_m in attempts:
        try:
            book(db, at(start_h, start_m), at(end_h, end_m))
        except SlotConflict:
            continue

    occupying = db.execute(
        select(Booking).where(
            Booking.provider_id == "P1", Booking.status.in_(BOOKING_OCCUPYING_STATUSES)
        )
    ).scalars().all()
    assert len(occupying) == 3
    for first, second in combinations(occupying, 2):
        assert not overlaps(first.start_at, first.end_at, second.start_at, second.end_at)
