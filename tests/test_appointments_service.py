from datetime import date
from types import SimpleNamespace
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from src.core.exceptions import InvalidTransitionError, NotFoundError, PermissionDeniedError
from src.modules.appointments.models import Appointment
from src.modules.appointments.schemas import AppointmentPublic, BookingRejected
from src.modules.service_records.models import ServiceRecord
from src.shared.enums import AppointmentStatus, ServiceRecordStatus, UserRole


async def _book(service, customer, vehicle, day=date(2025, 10, 22), start="09:00", duration=60):
    return await service.create_appointment(
        customer_id=customer.user_id,
        vehicle_id=vehicle.vehicle_id,
        service_ids=["oil-change", "wheel-alignment"],
        appointment_date=day,
        appointment_time=start,
        duration=duration,
        customer_notes="Brakes squeak",
    )


@pytest.mark.asyncio
async def test_create_appointment_is_confirmed_when_a_technician_is_free(appointment_service, seed):
    technician = await seed.technician("Kasun Silva", "EMP-001")
    customer = await seed.user()
    vehicle = await seed.vehicle(customer)

    appointment = await _book(appointment_service, customer, vehicle)

    assert isinstance(appointment, Appointment)
    assert appointment.status == AppointmentStatus.CONFIRMED
    assert appointment.end_time == "10:00"
    assert appointment.technician_id == technician.user_id
    assert appointment.technician_name == "Kasun Silva"
    assert appointment.booking_fee == Decimal("5.00")
    assert appointment.reference.startswith("APT-")
    assert [entry["status"] for entry in appointment.status_history] == ["pending", "confirmed"]
    assert appointment.status_history[0]["note"] == "Appointment created"
    assert appointment.status_history[1]["actor"] == "system"

    public = AppointmentPublic.model_validate(appointment)
    assert public.model_dump(by_alias=True)["appointmentTime"] == "09:00"


@pytest.mark.asyncio
async def test_create_appointment_stays_pending_without_technicians(appointment_service, seed):
    customer = await seed.user()
    vehicle = await seed.vehicle(customer)

    appointment = await _book(appointment_service, customer, vehicle)

    assert appointment.status == AppointmentStatus.PENDING
    assert appointment.technician_id is None


@pytest.mark.asyncio
async def test_booking_in_the_past_is_rejected(appointment_service, seed):
    customer = await seed.user()
    vehicle = await seed.vehicle(customer)

    result = await _book(appointment_service, customer, vehicle, day=date(2025, 10, 14))

    assert isinstance(result, BookingRejected)
    assert result.errors == ["Cannot book appointments in the past"]


@pytest.mark.asyncio
async def test_malformed_time_is_rejected_as_data(appointment_service, seed):
    customer = await seed.user()
    vehicle = await seed.vehicle(customer)

    result = await _book(appointment_service, customer, vehicle, start="9am")

    assert isinstance(result, BookingRejected)
    assert "Invalid time" in result.errors[0]


@pytest.mark.asyncio
async def test_booking_someone_elses_vehicle_is_forbidden(appointment_service, seed):
    owner = await seed.user(name="Owner")
    other = await seed.user(name="Other", email="other@example.com")
    vehicle = await seed.vehicle(owner)

    with pytest.raises(PermissionDeniedError):
        await _book(appointment_service, other, vehicle)


@pytest.mark.asyncio
async def test_unknown_customer_is_not_found(appointment_service, seed):
    owner = await seed.user()
    vehicle = await seed.vehicle(owner)
    ghost = SimpleNamespace(user_id="01UNKNOWNUNKNOWNUNKNOWN000")

    with pytest.raises(NotFoundError):
        await _book(appointment_service, ghost, vehicle)


@pytest.mark.asyncio
async def test_reschedule_confirmed_appointment(appointment_service, seed, live_channel):
    technician = await seed.technician("Kasun Silva", "EMP-001")
    customer = await seed.user()
    vehicle = await seed.vehicle(customer)
    appointment = await _book(appointment_service, customer, vehicle)
    assert appointment.status == AppointmentStatus.CONFIRMED
    live_channel.pushes.clear()

    result = await appointment_service.reschedule_appointment(
        appointment.appointment_id,
        new_date=date(2025, 10, 23),
        new_time="09:00",
        reason="Travelling on Wednesday",
        actor=customer.user_id,
        customer_id=customer.user_id,
    )

    assert isinstance(result, Appointment)
    assert result.appointment_date == date(2025, 10, 23)
    assert result.appointment_time == "09:00"
    assert result.end_time == "10:00"
    assert result.status == AppointmentStatus.CONFIRMED
    assert result.modification_count == 1
    assert len(result.modification_history) == 1
    entry = result.modification_history[0]
    assert (entry["oldDate"], entry["oldTime"]) == ("2025-10-22", "09:00")
    assert (entry["newDate"], entry["newTime"]) == ("2025-10-23", "09:00")
    assert entry["reason"] == "Travelling on Wednesday"
    notified = {user_id for user_id, _, _ in live_channel.pushes}
    assert notified == {customer.user_id, technician.user_id}


@pytest.mark.asyncio
async def test_reschedule_is_limited_by_modification_count(appointment_service, seed):
    customer = await seed.user()
    vehicle = await seed.vehicle(customer)
    appointment = await _book(appointment_service, customer, vehicle)

    for new_time in ("10:00", "11:00"):
        moved = await appointment_service.reschedule_appointment(
            appointment.appointment_id, date(2025, 10, 23), new_time, None, actor=customer.user_id
        )
        assert isinstance(moved, Appointment)

    rejected = await appointment_service.reschedule_appointment(
        appointment.appointment_id, date(2025, 10, 24), "09:00", None, actor=customer.user_id
    )
    assert isinstance(rejected, BookingRejected)
    assert rejected.errors == ["Appointments can be modified at most 2 times"]
    assert appointment.modification_count == 2
    assert appointment.appointment_time == "11:00"


@pytest.mark.asyncio
async def test_reschedule_inside_the_cutoff_is_rejected(appointment_service, seed):
    customer = await seed.user()
    vehicle = await seed.vehicle(customer)
    # 23 hours after the frozen clock.
    appointment = await _book(appointment_service, customer, vehicle, day=date(2025, 10, 16), start="08:00")

    rejected = await appointment_service.reschedule_appointment(
        appointment.appointment_id, date(2025, 10, 23), "09:00", None, actor=customer.user_id
    )
    assert isinstance(rejected, BookingRejected)
    assert "24 hours" in rejected.errors[0]
    assert appointment.modification_count == 0


@pytest.mark.asyncio
async def test_failed_reschedule_leaves_the_appointment_untouched(appointment_service, seed):
    customer = await seed.user()
    vehicle = await seed.vehicle(customer)
    appointment = await _book(appointment_service, customer, vehicle)

    rejected = await appointment_service.reschedule_appointment(
        appointment.appointment_id, date(2025, 10, 26), "09:00", None, actor=customer.user_id
    )
    assert isinstance(rejected, BookingRejected)
    assert rejected.errors == ["Selected date is not a working day"]
    assert appointment.appointment_date == date(2025, 10, 22)
    assert appointment.modification_count == 0
    assert appointment.modification_history == []


@pytest.mark.asyncio
async def test_cancellation_outside_window_is_free(appointment_service, seed):
    customer = await seed.user()
    vehicle = await seed.vehicle(customer)
    appointment = await _book(appointment_service, customer, vehicle)

    cancelled = await appointment_service.cancel_appointment(
        appointment.appointment_id, actor=customer.user_id, reason="Car sold", customer_id=customer.user_id
    )
    assert cancelled.status == AppointmentStatus.CANCELLED
    assert cancelled.cancellation_fee == Decimal("0.00")
    assert cancelled.cancellation_reason == "Car sold"
    assert cancelled.cancelled_at is not None
    assert cancelled.status_history[-1]["status"] == "cancelled"


@pytest.mark.asyncio
async def test_late_cancellation_charges_a_fee(appointment_service, seed):
    customer = await seed.user()
    vehicle = await seed.vehicle(customer)
    appointment = await _book(appointment_service, customer, vehicle, day=date(2025, 10, 16), start="10:00")

    cancelled = await appointment_service.cancel_appointment(appointment.appointment_id, actor=customer.user_id)
    assert cancelled.cancellation_fee == Decimal("2.50")


@pytest.mark.asyncio
async def test_terminal_appointment_rejects_further_transitions(appointment_service, seed):
    customer = await seed.user()
    vehicle = await seed.vehicle(customer)
    appointment = await _book(appointment_service, customer, vehicle)
    await appointment_service.cancel_appointment(appointment.appointment_id, actor=customer.user_id)
    history_length = len(appointment.status_history)

    with pytest.raises(InvalidTransitionError):
        await appointment_service.transition_appointment(
            appointment.appointment_id, AppointmentStatus.CONFIRMED, actor="admin"
        )
    assert appointment.status == AppointmentStatus.CANCELLED
    assert len(appointment.status_history) == history_length


@pytest.mark.asyncio
async def test_in_service_appointment_cannot_be_cancelled_or_rescheduled(appointment_service, service_records, seed):
    technician = await seed.technician("Kasun Silva", "EMP-001")
    customer = await seed.user()
    vehicle = await seed.vehicle(customer)
    appointment = await _book(appointment_service, customer, vehicle)
    await service_records.begin_service(appointment.appointment_id, technician)

    with pytest.raises(InvalidTransitionError):
        await appointment_service.cancel_appointment(appointment.appointment_id, actor=customer.user_id)
    with pytest.raises(InvalidTransitionError):
        await appointment_service.reschedule_appointment(
            appointment.appointment_id, date(2025, 10, 23), "09:00", None, actor=customer.user_id
        )


@pytest.mark.asyncio
async def test_customers_only_see_their_own_appointments(appointment_service, seed):
    customer = await seed.user()
    stranger = await seed.user(name="Stranger", email="stranger@example.com")
    admin = await seed.user(UserRole.ADMIN, name="Admin", email="admin@example.com")
    vehicle = await seed.vehicle(customer)
    appointment = await _book(appointment_service, customer, vehicle)

    assert (await appointment_service.get_for_user(appointment.appointment_id, customer)) is appointment
    assert (await appointment_service.get_for_user(appointment.appointment_id, admin)) is appointment
    with pytest.raises(NotFoundError):
        await appointment_service.get_for_user(appointment.appointment_id, stranger)
    with pytest.raises(NotFoundError):
        await appointment_service.cancel_appointment(
            appointment.appointment_id, actor=stranger.user_id, customer_id=stranger.user_id
        )

    assert [item.appointment_id for item in await appointment_service.list_for_customer(customer.user_id)] == [
        appointment.appointment_id
    ]
    assert await appointment_service.list_for_customer(stranger.user_id) == []


@pytest.mark.asyncio
async def test_admin_listing_and_stats(appointment_service, seed):
    customer = await seed.user()
    first = await seed.vehicle(customer, plate="CAB-0001")
    second = await seed.vehicle(customer, plate="CAB-0002")
    kept = await _book(appointment_service, customer, first)
    dropped = await _book(appointment_service, customer, second, start="11:00")
    await appointment_service.cancel_appointment(dropped.appointment_id, actor=customer.user_id)

    items, total = await appointment_service.admin_list(status=AppointmentStatus.PENDING)
    assert total == 1
    assert [item.appointment_id for item in items] == [kept.appointment_id]

    stats = await appointment_service.status_counts(date(2025, 10, 22))
    assert stats.total == 2
    assert stats.by_status[AppointmentStatus.PENDING] == 1
    assert stats.by_status[AppointmentStatus.CANCELLED] == 1
    assert stats.by_status[AppointmentStatus.COMPLETED] == 0


async def _service_record_count(db_session, appointment_id):
    stmt = select(func.count(ServiceRecord.service_record_id)).where(ServiceRecord.appointment_id == appointment_id)
    return (await db_session.execute(stmt)).scalar_one()


@pytest.mark.asyncio
async def test_admin_transition_cannot_enter_service_without_a_record(appointment_service, service_records, seed, db_session):
    await seed.technician("Kasun Silva", "EMP-001")
    admin = await seed.user(UserRole.ADMIN, name="Admin", email="admin@example.com")
    customer = await seed.user()
    vehicle = await seed.vehicle(customer)
    appointment = await _book(appointment_service, customer, vehicle)
    history_length = len(appointment.status_history)

    with pytest.raises(InvalidTransitionError):
        await appointment_service.transition_appointment(
            appointment.appointment_id, AppointmentStatus.IN_SERVICE, actor=admin.user_id
        )
    assert appointment.status == AppointmentStatus.CONFIRMED
    assert len(appointment.status_history) == history_length
    assert await _service_record_count(db_session, appointment.appointment_id) == 0

    record = await service_records.begin_service(appointment.appointment_id, admin)
    assert record.status == ServiceRecordStatus.RECEIVED
    assert appointment.status == AppointmentStatus.IN_SERVICE


@pytest.mark.asyncio
async def test_admin_transition_cannot_complete_an_open_service(appointment_service, service_records, seed):
    technician = await seed.technician("Kasun Silva", "EMP-001")
    admin = await seed.user(UserRole.ADMIN, name="Admin", email="admin@example.com")
    customer = await seed.user()
    vehicle = await seed.vehicle(customer)
    appointment = await _book(appointment_service, customer, vehicle)
    record = await service_records.begin_service(appointment.appointment_id, technician)
    await service_records.start_timer(record.service_record_id, technician)

    with pytest.raises(InvalidTransitionError):
        await appointment_service.transition_appointment(
            appointment.appointment_id, AppointmentStatus.COMPLETED, actor=admin.user_id
        )
    assert appointment.status == AppointmentStatus.IN_SERVICE
    assert record.status == ServiceRecordStatus.IN_PROGRESS
    assert record.timer_started

    await service_records.complete_service(record.service_record_id, admin)
    assert record.status == ServiceRecordStatus.COMPLETED
    assert not record.timer_started
    assert appointment.status == AppointmentStatus.COMPLETED
