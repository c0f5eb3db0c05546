import os

# Configuración de entorno ANTES de importar la aplicación
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["LOG_TO_FILE"] = "false"

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.timezone_utils import utcnow
from app.db.base import Base
from app.db.session import get_db, configure_sqlite_engine
from app.main import app
from app.models.schedule import ClassCategory
from app.schemas.credits import ClassPackageCreate
from app.schemas.member import MemberCreate, TrainerCreate
from app.schemas.membership import MembershipPlanCreate, MembershipAssign
from app.schemas.schedule import GymClassCreate, ClassScheduleCreate
from app.services.credits import credit_service
from app.services.member import member_service, trainer_service
from app.services.membership import membership_service
from app.services.schedule import class_service, schedule_service


# Usar una base de datos en memoria para pruebas
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
configure_sqlite_engine(engine)


@pytest.fixture(scope="session")
def db_engine():
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db(db_engine):
    """
    Sesión aislada por test. Los commit de los servicios liberan un SAVEPOINT
    y la transacción externa se deshace al terminar.
    """
    connection = db_engine.connect()
    transaction = connection.begin()
    TestingSessionLocal = sessionmaker(
        bind=connection, autocommit=False, autoflush=False, join_transaction_mode="create_savepoint"
    )
    session = TestingSessionLocal()

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture(scope="function")
def client(db):
    """
    Crea un cliente de prueba usando una sesión de base de datos de prueba.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# === Factorías ===

@pytest.fixture
def make_member(db):
    counter = {"n": 0}

    def _make(first_name="Ana", last_name="García", email=None):
        counter["n"] += 1
        email = email or f"socio{counter['n']}@test.com"
        member = member_service.register_member(
            db, member_in=MemberCreate(email=email, first_name=first_name, last_name=last_name)
        )
        return member_service.require_member(db, member.id)

    return _make


@pytest.fixture
def member(make_member):
    return make_member()


@pytest.fixture
def trainer(db):
    return trainer_service.create_trainer(
        db, trainer_in=TrainerCreate(
            email="coach@test.com", first_name="Luis", last_name="Pérez", specialization="Yoga"
        )
    )


@pytest.fixture
def gym_class(db):
    return class_service.create_class(
        db, class_in=GymClassCreate(
            name="Yoga Flow", category=ClassCategory.YOGA, duration_minutes=60, max_capacity=2
        )
    )


@pytest.fixture
def make_schedule(db, gym_class):
    def _make(start=None, capacity=None, trainer_id=None, hours_ahead=48):
        start = start or utcnow().replace(microsecond=0) + timedelta(hours=hours_ahead)
        return schedule_service.create_schedule(
            db, schedule_in=ClassScheduleCreate(
                class_id=gym_class.id, trainer_id=trainer_id, start_time=start, capacity=capacity
            )
        )

    return _make


@pytest.fixture
def schedule(make_schedule):
    return make_schedule()


@pytest.fixture
def package(db):
    return credit_service.create_package(
        db, package_in=ClassPackageCreate(
            name="Bono 5 clases", credits_included=5, price_cents=5000, validity_days=30
        )
    )


@pytest.fixture
def give_credits(db, package):
    def _give(member_id):
        return credit_service.purchase_package(db, member_id=member_id, package_id=package.id)

    return _give


@pytest.fixture
def plan(db):
    return membership_service.create_plan(
        db, plan_in=MembershipPlanCreate(name="Mensual", price_cents=4000, duration_days=30)
    )


@pytest.fixture
def give_membership(db, plan):
    def _give(member_id, discount_code=None):
        return membership_service.assign_membership(
            db, assign_in=MembershipAssign(member_id=member_id, plan_id=plan.id, discount_code=discount_code)
        )

    return _give
