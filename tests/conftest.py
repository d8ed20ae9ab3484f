import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
import sys
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret")

from src.core.config import SchedulingConfig  # noqa: E402
from src.core.database import Base  # noqa: E402
from src.core.exceptions import DeliveryError  # noqa: E402
from src.modules.appointments.assignment import AssignmentEngine  # noqa: E402
from src.modules.appointments.models import Appointment  # noqa: E402,F401
from src.modules.appointments.service import AppointmentService  # noqa: E402
from src.modules.notifications.channels import DeliveryResult  # noqa: E402
from src.modules.notifications.models import Notification  # noqa: E402,F401
from src.modules.notifications.service import NotificationFanout, NotificationService  # noqa: E402
from src.modules.schedule.locks import InProcessAdmissionLock  # noqa: E402
from src.modules.service_records.models import ServiceRecord  # noqa: E402,F401
from src.modules.service_records.service import ServiceRecordService  # noqa: E402
from src.modules.users.directory import SqlUserDirectory  # noqa: E402
from src.modules.users.models import User  # noqa: E402
from src.modules.vehicles.directory import SqlVehicleDirectory  # noqa: E402
from src.modules.vehicles.models import Vehicle  # noqa: E402
from src.shared.enums import UserRole  # noqa: E402
from src.shared.ulid import generate_ulid  # noqa: E402

# Wednesday 2025-10-15 09:00 in Asia/Colombo (UTC+05:30).
NOW = datetime(2025, 10, 15, 3, 30, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def db_session():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)
    async with SessionLocal() as session:
        yield session
    await engine.dispose()


@dataclass
class FakeEmailSender:
    fail: bool = False
    sent: list[dict[str, str]] = field(default_factory=list)

    async def send_email(self, to: str, subject: str, html: str) -> DeliveryResult:
        if self.fail:
            raise DeliveryError("email", "SMTP relay refused the message")
        self.sent.append({"to": to, "subject": subject, "html": html})
        return DeliveryResult(success=True, message_id=f"email-{len(self.sent)}")


@dataclass
class FakeSmsSender:
    fail: bool = False
    sent: list[dict[str, str]] = field(default_factory=list)

    async def send_sms(self, to: str, message: str) -> DeliveryResult:
        if self.fail:
            raise DeliveryError("sms", "SMS gateway returned 503")
        self.sent.append({"to": to, "message": message})
        return DeliveryResult(success=True, message_id=f"sms-{len(self.sent)}")


@dataclass
class FakeLiveChannel:
    pushes: list[tuple[str, str, dict[str, Any]]] = field(default_factory=list)

    async def push_to_user(self, user_id: str, event: str, payload: dict[str, Any]) -> bool:
        self.pushes.append((user_id, event, payload))
        return True


@pytest.fixture
def config():
    return SchedulingConfig()


@pytest.fixture
def email_sender():
    return FakeEmailSender()


@pytest.fixture
def sms_sender():
    return FakeSmsSender()


@pytest.fixture
def live_channel():
    return FakeLiveChannel()


@pytest.fixture
def frozen_now(monkeypatch):
    for service_cls in (AppointmentService, AssignmentEngine, NotificationService, ServiceRecordService):
        monkeypatch.setattr(service_cls, "_now", lambda self: NOW)
    return NOW


@pytest.fixture
def fanout(db_session, email_sender, sms_sender, live_channel):
    return NotificationFanout(
        db_session,
        SqlUserDirectory(db_session),
        SqlVehicleDirectory(db_session),
        email_sender,
        sms_sender,
        live_channel,
        email_timeout=1,
        sms_timeout=1,
        in_app_timeout=1,
        push_timeout=1,
    )


@pytest.fixture
def admission_lock():
    return InProcessAdmissionLock()


@pytest.fixture
def assignment(db_session, fanout, config, admission_lock):
    return AssignmentEngine(db_session, SqlUserDirectory(db_session), fanout, config, admission_lock)


@pytest.fixture
def appointment_service(db_session, config, fanout, assignment, admission_lock, frozen_now):
    return AppointmentService(
        db_session,
        config,
        admission_lock,
        SqlUserDirectory(db_session),
        SqlVehicleDirectory(db_session),
        fanout,
        assignment,
    )


@pytest.fixture
def service_records(db_session, config, fanout, frozen_now):
    return ServiceRecordService(db_session, config, fanout)


@pytest.fixture
def seed(db_session):
    """Factories for users and vehicles, committed immediately."""

    class Seeder:
        async def user(
            self,
            role: UserRole = UserRole.CUSTOMER,
            name: str = "Nimal Perera",
            email: str | None = "nimal@example.com",
            phone: str | None = "0771234567",
            employee_id: str | None = None,
            **prefs: bool,
        ) -> User:
            user = User(
                user_id=generate_ulid(),
                role=role,
                display_name=name,
                email=email,
                phone_number=phone,
                employee_id=employee_id,
                is_active=True,
                **prefs,
            )
            db_session.add(user)
            await db_session.commit()
            return user

        async def technician(self, name: str, employee_id: str) -> User:
            return await self.user(
                UserRole.EMPLOYEE,
                name=name,
                email=f"{employee_id.lower()}@garage.example",
                phone=None,
                employee_id=employee_id,
            )

        async def vehicle(self, owner: User, plate: str = "CAB-1234", make: str = "Toyota", model: str = "Axio") -> Vehicle:
            vehicle = Vehicle(vehicle_id=generate_ulid(), owner_id=owner.user_id, make=make, model=model, plate_number=plate)
            db_session.add(vehicle)
            await db_session.commit()
            return vehicle

    return Seeder()
