from __future__ import annotations

from sqlalchemy import update

from casenotes.infrastructure.db.models_sqlalchemy import User


def test_reminders_group_stale_unreceived_notes_by_requester(container, world, make_request, clock) -> None:
    cases = container.case_note_service
    first = cases.create(make_request(patient_index=0)).value
    second = cases.create(make_request(patient_index=1)).value
    other = cases.create(make_request(patient_index=2, requested_by_user_id=world.other_ca_id)).value
    for note in (first, second, other):
        cases.approve(note.id, world.mr_staff_id)
    cases.mark_received(second.id, world.ca_id)

    assert container.reminder_service.unverified_reminders() == []

    clock.advance(hours=25)
    reminders = {r.user_id: r for r in container.reminder_service.unverified_reminders()}

    assert set(reminders) == {world.ca_id, world.other_ca_id}
    mine = reminders[world.ca_id]
    assert mine.user_name == "Clinic Assistant A"
    assert mine.email == "ca.a@example.org"
    assert mine.request_numbers == [first.request_number]
    assert reminders[world.other_ca_id].request_numbers == [other.request_number]


def test_reminders_skip_inactive_users(container, world, make_request, clock, session_factory) -> None:
    note = container.case_note_service.create(make_request()).value
    container.case_note_service.approve(note.id, world.mr_staff_id)
    with session_factory() as session:
        session.execute(update(User).where(User.id == world.ca_id).values(is_active=False))

    clock.advance(days=2)

    assert container.reminder_service.unverified_reminders() == []


def test_send_reminders_calls_notifier(container, world, make_request, clock) -> None:
    note = container.case_note_service.create(make_request()).value
    container.case_note_service.approve(note.id, world.mr_staff_id)
    clock.advance(hours=30)

    sent = []
    count = container.reminder_service.send_reminders(sent.append)

    assert count == 1
    assert [r.request_numbers for r in sent] == [[note.request_number]]
    assert container.reminder_service.send_reminders() == 1
