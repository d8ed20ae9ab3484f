from datetime import date, timedelta

import pytest

from src.core.exceptions import InvalidTransitionError, NotFoundError, PermissionDeniedError
from src.modules.service_records.service import ServiceRecordService
from src.shared.enums import AppointmentStatus, NotificationType, ServiceRecordStatus, UserRole


async def _confirmed_appointment(appointment_service, seed):
    technician = await seed.technician("Kasun Silva", "EMP-001")
    customer = await seed.user()
    vehicle = await seed.vehicle(customer)
    appointment = await appointment_service.create_appointment(
        customer_id=customer.user_id,
        vehicle_id=vehicle.vehicle_id,
        service_ids=["full-service"],
        appointment_date=date(2025, 10, 22),
        appointment_time="09:00",
        duration=90,
    )
    assert appointment.status == AppointmentStatus.CONFIRMED
    return appointment, technician, customer


@pytest.mark.asyncio
async def test_full_service_flow(appointment_service, service_records, seed, frozen_now, monkeypatch, live_channel):
    appointment, technician, customer = await _confirmed_appointment(appointment_service, seed)

    record = await service_records.begin_service(appointment.appointment_id, technician)
    assert appointment.status == AppointmentStatus.IN_SERVICE
    assert record.status == ServiceRecordStatus.RECEIVED
    assert record.estimated_duration_minutes == 90
    assert record.live_updates[0]["message"] == "Vehicle received"

    live_channel.pushes.clear()
    await service_records.start_timer(record.service_record_id, technician)
    assert record.status == ServiceRecordStatus.IN_PROGRESS
    assert [event["notification"]["type"] for _, _, event in live_channel.pushes] == [NotificationType.SERVICE_STARTED]

    monkeypatch.setattr(ServiceRecordService, "_now", lambda self: frozen_now + timedelta(minutes=45))
    await service_records.stop_timer(record.service_record_id, technician)
    await service_records.add_live_update(record.service_record_id, "Brake pads replaced", technician)
    await service_records.update_progress(record.service_record_id, 60, technician)
    public = service_records.to_public(record)
    assert public.current_timer_value == 45 * 60 * 1000
    assert public.derived_progress == 50.0
    assert public.progress_percentage == 60

    await service_records.mark_quality_check(record.service_record_id, technician)
    assert record.status == ServiceRecordStatus.QUALITY_CHECK

    live_channel.pushes.clear()
    await service_records.complete_service(record.service_record_id, technician, notes="Replace tyres soon")
    assert record.status == ServiceRecordStatus.COMPLETED
    assert record.progress_percentage == 100
    assert appointment.status == AppointmentStatus.COMPLETED
    assert appointment.completed_at is not None
    assert [event["notification"]["type"] for _, _, event in live_channel.pushes] == [
        NotificationType.SERVICE_COMPLETED,
        NotificationType.VEHICLE_READY,
    ]
    assert all(user_id == customer.user_id for user_id, _, _ in live_channel.pushes)
    messages = [update["message"] for update in record.live_updates]
    assert messages == [
        "Vehicle received",
        "Work started",
        "Work paused",
        "Brake pads replaced",
        "Quality check in progress",
        "Service completed",
    ]


@pytest.mark.asyncio
async def test_only_the_assigned_technician_can_work_the_record(appointment_service, service_records, seed):
    appointment, technician, customer = await _confirmed_appointment(appointment_service, seed)
    colleague = await seed.technician("Ruwan Fernando", "EMP-002")

    with pytest.raises(PermissionDeniedError):
        await service_records.begin_service(appointment.appointment_id, colleague)

    record = await service_records.begin_service(appointment.appointment_id, technician)
    with pytest.raises(PermissionDeniedError):
        await service_records.start_timer(record.service_record_id, colleague)
    with pytest.raises(NotFoundError):
        await service_records.get_record(record.service_record_id, colleague)

    assert (await service_records.get_record(record.service_record_id, customer)).appointment_id == appointment.appointment_id
    assert [item.service_record_id for item in await service_records.list_mine(technician)] == [record.service_record_id]
    assert await service_records.list_mine(colleague) == []


@pytest.mark.asyncio
async def test_service_cannot_begin_twice_or_after_cancellation(appointment_service, service_records, seed):
    appointment, technician, _ = await _confirmed_appointment(appointment_service, seed)
    admin = await seed.user(UserRole.ADMIN, name="Admin", email="admin@example.com")
    await service_records.begin_service(appointment.appointment_id, technician)

    with pytest.raises(InvalidTransitionError):
        await service_records.begin_service(appointment.appointment_id, admin)

    customer = await seed.user(name="Walk In", email="walkin@example.com")
    vehicle = await seed.vehicle(customer, plate="WLK-0001")
    cancelled = await appointment_service.create_appointment(
        customer_id=customer.user_id,
        vehicle_id=vehicle.vehicle_id,
        service_ids=["wash"],
        appointment_date=date(2025, 10, 24),
        appointment_time="09:00",
        duration=30,
    )
    await appointment_service.cancel_appointment(cancelled.appointment_id, actor=customer.user_id)
    with pytest.raises(InvalidTransitionError):
        await service_records.begin_service(cancelled.appointment_id, admin)


@pytest.mark.asyncio
async def test_completion_requires_work_in_progress(appointment_service, service_records, seed):
    appointment, technician, _ = await _confirmed_appointment(appointment_service, seed)
    record = await service_records.begin_service(appointment.appointment_id, technician)

    with pytest.raises(InvalidTransitionError):
        await service_records.complete_service(record.service_record_id, technician)
    with pytest.raises(InvalidTransitionError):
        await service_records.mark_quality_check(record.service_record_id, technician)
    assert appointment.status == AppointmentStatus.IN_SERVICE
