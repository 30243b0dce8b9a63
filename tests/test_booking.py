from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from roombook import db
from roombook.engine import Engine
from roombook.errors import (
    AuthorizationError,
    ConflictError,
    InvalidStatusTransition,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from roombook.models import (
    Booking,
    BookingStatusCode,
    Notification,
    NotificationStatusCode,
    NotificationType,
    NotificationTypeCode,
    seed_lookups,
)
from roombook.services.booking_service import BookingDetails, normalize_ids
from roombook.services.conflict_checker import intervals_overlap
from roombook.services.lookups import Lookups
from tests.conftest import BASE


def at(h, m=0):
    return BASE.replace(hour=h, minute=m)


def details(room, start, end, title='Meeting', hosts=(), participants=()):
    return BookingDetails(title=title, start_time=start, end_time=end, room_ids=[room.id],
                          host_ids=list(hosts), participant_ids=list(participants))


def test_booking_happy_path(engine, init_data):
    d = details(init_data.room_r, at(10), at(11), hosts=[init_data.bob.id], participants=[init_data.carol.id])
    [booking] = engine.bookings.create_booking(init_data.alice, d)

    assert booking.id is not None
    assert booking.status_id == BookingStatusCode.CONFIRMED.value
    assert booking.created_by == init_data.alice.id
    assert [h.user_id for h in booking.hosts] == [init_data.bob.id]
    assert [p.user_id for p in booking.participants] == [init_data.carol.id]


def test_create_enqueues_booking_created_for_hosts_and_participants(engine, init_data):
    d = details(init_data.room_r, at(10), at(11), hosts=[init_data.bob.id],
                participants=[init_data.carol.id, init_data.bob.id])
    [booking] = engine.bookings.create_booking(init_data.alice, d)

    [notification] = Notification.query.filter_by(booking_id=booking.id).all()
    assert notification.type_id == NotificationTypeCode.BOOKING_CREATED.value
    assert notification.status_id == NotificationStatusCode.PENDING.value
    assert notification.retry_count == 0
    assert notification.max_retries == 3
    assert 'Room R, HQ' in notification.content
    assert sorted(r.user_id for r in notification.recipients) == sorted([init_data.bob.id, init_data.carol.id])
    for recipient in notification.recipients:
        assert sorted(m.delivery_method_id for m in recipient.delivery_methods) == ['EMAIL', 'IN_APP']


def test_overlap_scenario(engine, init_data):
    room = init_data.room_r
    engine.bookings.create_booking(init_data.alice, details(room, at(10), at(11)))

    with pytest.raises(ConflictError) as excinfo:
        engine.bookings.create_booking(init_data.bob, details(room, at(10, 30), at(11, 30)))
    assert excinfo.value.conflicts[0]['room_name'] == 'Room R'
    assert 'Room R' in excinfo.value.message

    # touching endpoints do not conflict
    [adjacent] = engine.bookings.create_booking(init_data.bob, details(room, at(11), at(12)))
    assert adjacent.id is not None

    with pytest.raises(ConflictError):
        engine.bookings.create_booking(init_data.bob, details(room, at(9), at(12)))

    assert Booking.query.count() == 2


def test_end_before_start_is_rejected(engine, init_data):
    with pytest.raises(ValidationError, match="after start"):
        engine.bookings.create_booking(init_data.alice, details(init_data.room_r, at(11), at(10)))
    with pytest.raises(ValidationError):
        engine.bookings.create_booking(init_data.alice, details(init_data.room_r, at(11), at(11)))


def test_unknown_room_and_users_are_rejected(engine, init_data):
    bad_room = BookingDetails(title='x', start_time=at(10), end_time=at(11), room_ids=[999])
    with pytest.raises(ValidationError, match="not found"):
        engine.bookings.create_booking(init_data.alice, bad_room)

    with pytest.raises(ValidationError, match="Unknown users"):
        engine.bookings.create_booking(init_data.alice, details(init_data.room_r, at(10), at(11), hosts=[12345]))
    assert Booking.query.count() == 0


def test_multi_room_create_is_all_or_nothing(engine, init_data):
    engine.bookings.create_booking(init_data.alice, details(init_data.room_s, at(10), at(11)))

    both = BookingDetails(title='Offsite', start_time=at(10), end_time=at(12),
                          room_ids=[init_data.room_r.id, init_data.room_s.id])
    with pytest.raises(ConflictError) as excinfo:
        engine.bookings.create_booking(init_data.bob, both)
    assert [c['room_name'] for c in excinfo.value.conflicts] == ['Room S']
    assert Booking.query.filter_by(user_id=init_data.bob.id).count() == 0

    both.start_time, both.end_time = at(13), at(14)
    bookings = engine.bookings.create_booking(init_data.bob, both)
    assert sorted(b.room_id for b in bookings) == sorted([init_data.room_r.id, init_data.room_s.id])
    assert Notification.query.count() == 3


def test_force_create_ignores_conflicts(engine, init_data):
    engine.bookings.create_booking(init_data.alice, details(init_data.room_r, at(10), at(11)))
    [forced] = engine.bookings.create_booking(init_data.bob, details(init_data.room_r, at(10), at(11)), force=True)
    assert forced.id is not None


def test_approval_workflow_creates_pending(app, engine, init_data):
    engine.bookings.requires_approval = True
    [booking] = engine.bookings.create_booking(init_data.alice, details(init_data.room_r, at(10), at(11)))
    assert booking.status_id == BookingStatusCode.PENDING.value

    with pytest.raises(AuthorizationError):
        engine.bookings.approve_booking(booking.id, init_data.bob)

    engine.bookings.approve_booking(booking.id, init_data.admin)
    assert booking.status_id == BookingStatusCode.CONFIRMED.value
    approved = Notification.query.filter_by(type_id=NotificationTypeCode.BOOKING_APPROVED.value).one()
    assert [r.user_id for r in approved.recipients] == [init_data.alice.id]

    with pytest.raises(InvalidStatusTransition):
        engine.bookings.reject_booking(booking.id, init_data.admin)


def test_reject_pending_booking(engine, init_data):
    engine.bookings.requires_approval = True
    [booking] = engine.bookings.create_booking(init_data.alice, details(init_data.room_r, at(10), at(11)))
    engine.bookings.reject_booking(booking.id, init_data.admin, reason='Room under maintenance')

    assert booking.status_id == BookingStatusCode.REJECTED.value
    rejected = Notification.query.filter_by(type_id=NotificationTypeCode.BOOKING_REJECTED.value).one()
    assert rejected.content.endswith('Room under maintenance')


def test_missing_notification_type_rolls_back_create(app, init_data):
    db.session.delete(db.session.get(NotificationType, NotificationTypeCode.BOOKING_CREATED.value))
    db.session.commit()
    fresh = Engine(db.session, app.config)

    with pytest.raises(PersistenceError):
        fresh.bookings.create_booking(init_data.alice, details(init_data.room_r, at(10), at(11)))
    assert Booking.query.count() == 0
    assert Notification.query.count() == 0


def test_update_only_by_creator(engine, init_data):
    [booking] = engine.bookings.create_booking(init_data.alice, details(init_data.room_r, at(10), at(11)))
    with pytest.raises(AuthorizationError):
        engine.bookings.update_booking(booking.id, init_data.bob, details(init_data.room_r, at(12), at(13)))

    with pytest.raises(NotFoundError):
        engine.bookings.update_booking(999, init_data.alice, details(init_data.room_r, at(12), at(13)))


def test_update_does_not_conflict_with_itself(engine, init_data):
    [booking] = engine.bookings.create_booking(init_data.alice, details(init_data.room_r, at(10), at(11)))
    updated = engine.bookings.update_booking(booking.id, init_data.alice,
                                             details(init_data.room_r, at(10, 30), at(11, 30), title='Moved'))
    assert updated.start_time == at(10, 30)
    assert updated.title == 'Moved'


def test_update_conflicting_with_another_booking(engine, init_data):
    engine.bookings.create_booking(init_data.bob, details(init_data.room_r, at(12), at(13)))
    [booking] = engine.bookings.create_booking(init_data.alice, details(init_data.room_r, at(10), at(11)))

    with pytest.raises(ConflictError):
        engine.bookings.update_booking(booking.id, init_data.alice, details(init_data.room_r, at(10), at(12, 30)))

    db.session.refresh(booking)
    assert booking.end_time == at(11)


def test_update_replaces_attendees_and_notifies(engine, init_data):
    d = details(init_data.room_r, at(10), at(11), hosts=[init_data.bob.id], participants=[init_data.carol.id])
    [booking] = engine.bookings.create_booking(init_data.alice, d)

    new = details(init_data.room_s, at(14), at(15), hosts=[init_data.carol.id], participants=[])
    engine.bookings.update_booking(booking.id, init_data.alice, new)

    assert booking.room_id == init_data.room_s.id
    assert [h.user_id for h in booking.hosts] == [init_data.carol.id]
    assert booking.participants == []

    updated = Notification.query.filter_by(booking_id=booking.id,
                                           type_id=NotificationTypeCode.BOOKING_UPDATED.value).one()
    assert 'Room S, HQ' in updated.content
    assert [r.user_id for r in updated.recipients] == [init_data.carol.id]


def test_update_requires_single_room(engine, init_data):
    [booking] = engine.bookings.create_booking(init_data.alice, details(init_data.room_r, at(10), at(11)))
    two_rooms = BookingDetails(title='x', start_time=at(10), end_time=at(11),
                               room_ids=[init_data.room_r.id, init_data.room_s.id])
    with pytest.raises(ValidationError):
        engine.bookings.update_booking(booking.id, init_data.alice, two_rooms)


def test_cancel_requires_creator_and_confirmation(engine, init_data):
    [booking] = engine.bookings.create_booking(init_data.alice, details(init_data.room_r, at(10), at(11)))

    with pytest.raises(AuthorizationError):
        engine.bookings.cancel_booking(booking.id, init_data.bob, confirm=True)
    with pytest.raises(ValidationError, match="confirm"):
        engine.bookings.cancel_booking(booking.id, init_data.alice)

    engine.bookings.cancel_booking(booking.id, init_data.alice, confirm=True)
    assert booking.status_id == BookingStatusCode.CANCELLED.value
    assert booking.is_deleted
    assert booking.deleted_at is not None

    # cancel is terminal
    with pytest.raises(InvalidStatusTransition):
        engine.bookings.cancel_booking(booking.id, init_data.alice, confirm=True)
    with pytest.raises(InvalidStatusTransition):
        engine.bookings.update_booking(booking.id, init_data.alice, details(init_data.room_r, at(10), at(11)))


def test_cancel_sweeps_only_pending_notifications(engine, init_data):
    d = details(init_data.room_r, at(10), at(11), participants=[init_data.bob.id])
    [booking] = engine.bookings.create_booking(init_data.alice, d)
    created = Notification.query.filter_by(booking_id=booking.id).one()

    sent = engine.scheduler.enqueue(NotificationTypeCode.BOOKING_REMINDER, 'sent', 'x', [init_data.bob.id],
                                    booking_id=booking.id)
    failed = engine.scheduler.enqueue(NotificationTypeCode.BOOKING_REMINDER, 'failed', 'x', [init_data.bob.id],
                                      booking_id=booking.id)
    delivered = engine.scheduler.enqueue(NotificationTypeCode.BOOKING_REMINDER, 'delivered', 'x',
                                         [init_data.bob.id], booking_id=booking.id)
    sent.status_id = NotificationStatusCode.SENT.value
    failed.status_id = NotificationStatusCode.FAILED.value
    delivered.status_id = NotificationStatusCode.DELIVERED.value
    db.session.commit()

    engine.bookings.cancel_booking(booking.id, init_data.alice, confirm=True)

    assert created.is_deleted
    assert created.status_id == NotificationStatusCode.PENDING.value
    assert not sent.is_deleted
    assert not failed.is_deleted
    assert not delivered.is_deleted
    assert sent.status_id == NotificationStatusCode.SENT.value
    assert delivered.status_id == NotificationStatusCode.DELIVERED.value

    alert = Notification.query.filter_by(booking_id=booking.id,
                                         type_id=NotificationTypeCode.BOOKING_CANCELLED.value).one()
    assert not alert.is_deleted
    assert [r.user_id for r in alert.recipients] == [init_data.bob.id]


def test_cancel_without_alert(engine, init_data):
    engine.bookings.notify_on_cancel = False
    [booking] = engine.bookings.create_booking(init_data.alice, details(init_data.room_r, at(10), at(11)))
    engine.bookings.cancel_booking(booking.id, init_data.alice, confirm=True)

    live = Notification.query.filter(Notification.booking_id == booking.id, Notification.deleted_at.is_(None))
    assert live.count() == 0


def test_cancelled_slot_can_be_rebooked(engine, init_data):
    [booking] = engine.bookings.create_booking(init_data.alice, details(init_data.room_r, at(10), at(11)))
    engine.bookings.cancel_booking(booking.id, init_data.alice, confirm=True)
    [again] = engine.bookings.create_booking(init_data.bob, details(init_data.room_r, at(10), at(11)))
    assert again.id != booking.id


def test_no_overlaps_after_mixed_operations(engine, init_data):
    room = init_data.room_r
    attempts = [(9, 11), (10, 12), (11, 13), (8, 9), (12, 14), (13, 15), (9, 10), (14, 16), (15, 17)]
    created = []
    for start, end in attempts:
        try:
            created += engine.bookings.create_booking(init_data.alice, details(room, at(start), at(end)))
        except ConflictError:
            pass

    moves = [(8, 10), (12, 13), (16, 18), (10, 11)]
    for booking, (start, end) in zip(created, moves):
        try:
            engine.bookings.update_booking(booking.id, init_data.alice, details(room, at(start), at(end)))
        except ConflictError:
            pass

    live = Booking.query.filter(Booking.room_id == room.id, Booking.deleted_at.is_(None)).all()
    assert len(live) >= 3
    for i, a in enumerate(live):
        for b in live[i + 1:]:
            assert not intervals_overlap(a.start_time, a.end_time, b.start_time, b.end_time), (a.id, b.id)


def test_check_availability(engine, init_data):
    engine.bookings.create_booking(init_data.alice, details(init_data.room_r, at(10), at(11)))

    result = engine.bookings.check_availability(f"{init_data.room_r.id},{init_data.room_s.id}",
                                                at(10, 30), at(11, 30))
    assert result['available'] is False
    [conflict] = result['conflicts']
    assert conflict['room_id'] == init_data.room_r.id
    assert conflict['message'] == 'Room R is already booked for the selected time period'

    free = engine.bookings.check_availability([init_data.room_r.id], at(11).isoformat(), at(12).isoformat())
    assert free == {'available': True, 'conflicts': []}

    with pytest.raises(ValidationError, match="Missing"):
        engine.bookings.check_availability([], at(11), at(12))


def test_complete_finished_bookings(engine, init_data):
    [done] = engine.bookings.create_booking(init_data.alice, details(init_data.room_r, at(8), at(9)))
    [later] = engine.bookings.create_booking(init_data.alice, details(init_data.room_r, at(12), at(13)))

    assert engine.bookings.complete_finished_bookings(now=at(10)) == 1
    assert done.status_id == BookingStatusCode.COMPLETED.value
    assert later.status_id == BookingStatusCode.CONFIRMED.value


def test_available_time_slots(engine, init_data):
    engine.bookings.create_booking(init_data.alice, details(init_data.room_r, at(10), at(11)))
    engine.bookings.create_booking(init_data.alice, details(init_data.room_r, at(11, 30), at(12)))

    slots = engine.bookings.get_available_time_slots(init_data.room_r.id, BASE.date(), duration=60,
                                                     now=BASE - timedelta(days=1))
    assert slots == [
        {'start': at(8).isoformat(), 'end': at(10).isoformat()},
        {'start': at(12).isoformat(), 'end': at(18).isoformat()},
    ]


def test_get_user_bookings_skips_cancelled(engine, init_data):
    [keep] = engine.bookings.create_booking(init_data.alice, details(init_data.room_r, at(10), at(11)))
    [drop] = engine.bookings.create_booking(init_data.alice, details(init_data.room_r, at(12), at(13)))
    engine.bookings.cancel_booking(drop.id, init_data.alice, confirm=True)

    upcoming = engine.bookings.get_user_bookings(init_data.alice.id, now=BASE - timedelta(days=1))
    assert [b.id for b in upcoming] == [keep.id]


def test_normalize_ids():
    assert normalize_ids(['1,2', 3, ' 4 ']) == [1, 2, 3, 4]
    assert normalize_ids('5') == [5]
    assert normalize_ids(None) == []
    with pytest.raises(ValidationError):
        normalize_ids(['abc'])


def test_details_from_payload():
    d = BookingDetails.from_payload({
        'title': ' Standup ',
        'start_time': '2030-01-15T10:00:00+01:00',
        'end_time': '2030-01-15T10:30:00Z',
        'room_id': 3,
        'participant_ids': '4,5',
    })
    assert d.title == 'Standup'
    assert d.start_time == at(9)
    assert d.end_time == at(10, 30)
    assert d.room_ids == [3]
    assert d.participant_ids == [4, 5]

    with pytest.raises(ValidationError, match="start_time is required"):
        BookingDetails.from_payload({'end_time': '2030-01-15T10:30:00'})

    with pytest.raises(ValidationError, match="title must be a string"):
        BookingDetails.from_payload({'title': 5, 'start_time': '2030-01-15T10:00:00',
                                     'end_time': '2030-01-15T11:00:00', 'room_id': 1})
    with pytest.raises(ValidationError, match="JSON object"):
        BookingDetails.from_payload([{'title': 'Standup'}])
    with pytest.raises(ValidationError, match="ISO 8601"):
        BookingDetails.from_payload({'start_time': 'tomorrow', 'end_time': '2030-01-15T10:30:00'})


def test_check_availability_rejects_malformed_times(engine, init_data):
    with pytest.raises(ValidationError, match="ISO 8601"):
        engine.bookings.check_availability([init_data.room_r.id], 'tomorrow', at(11).isoformat())


def test_update_never_overlaps_another_booking(engine, init_data):
    [other] = engine.bookings.create_booking(init_data.bob, details(init_data.room_r, at(10), at(11)))
    [mine] = engine.bookings.create_booking(init_data.alice, details(init_data.room_r, at(12), at(13)))

    with pytest.raises(ConflictError):
        engine.bookings.update_booking(mine.id, init_data.alice, details(init_data.room_r, at(10), at(11)))

    db.session.refresh(mine)
    assert not intervals_overlap(other.start_time, other.end_time, mine.start_time, mine.end_time)


def test_missing_notification_type_rolls_back_update(app, engine, init_data):
    d = details(init_data.room_r, at(10), at(11), hosts=[init_data.bob.id])
    [booking] = engine.bookings.create_booking(init_data.alice, d)
    db.session.delete(db.session.get(NotificationType, NotificationTypeCode.BOOKING_UPDATED.value))
    db.session.commit()
    fresh = Engine(db.session, app.config)

    with pytest.raises(PersistenceError):
        fresh.bookings.update_booking(booking.id, init_data.alice,
                                      details(init_data.room_s, at(14), at(15), title='Moved',
                                              hosts=[init_data.carol.id]))

    db.session.refresh(booking)
    assert booking.title == 'Meeting'
    assert booking.room_id == init_data.room_r.id
    assert booking.start_time == at(10)
    assert [h.user_id for h in booking.hosts] == [init_data.bob.id]
    assert Notification.query.filter_by(booking_id=booking.id).count() == 1


def test_store_failure_surfaces_generic_error(engine, init_data, monkeypatch):
    def failing_flush(*args, **kwargs):
        raise OperationalError("INSERT INTO bookings", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db.session(), 'flush', failing_flush)
    with pytest.raises(PersistenceError) as exc:
        engine.bookings.create_booking(init_data.alice, details(init_data.room_r, at(10), at(11)))
    monkeypatch.undo()

    assert exc.value.message == "Failed to create booking. Please try again."
    assert 'disk' not in exc.value.to_dict()['error']
    assert Booking.query.count() == 0
    assert Notification.query.count() == 0


def test_lookups_pick_up_late_seeding(app):
    db.session.delete(db.session.get(NotificationType, NotificationTypeCode.BOOKING_REMINDER.value))
    db.session.commit()
    lookups = Lookups(db.session).load()

    with pytest.raises(PersistenceError):
        lookups.require(NotificationTypeCode.BOOKING_REMINDER)
    assert lookups.require(NotificationTypeCode.BOOKING_CREATED) == 'BOOKING_CREATED'

    seed_lookups(db.session)
    assert lookups.require(NotificationTypeCode.BOOKING_REMINDER) == 'BOOKING_REMINDER'
