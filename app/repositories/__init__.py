# Inicializador del paquete repositories
from app.repositories.base import BaseRepository

from app.repositories.user import user_repository
from app.repositories.member import member_repository, trainer_repository
from app.repositories.schedule import (
    class_repository,
    class_schedule_repository,
    class_booking_repository,
    class_waitlist_repository,
    instructor_rating_repository
)
from app.repositories.membership import membership_plan_repository, membership_repository
from app.repositories.discount import discount_code_repository
from app.repositories.credits import (
    class_package_repository,
    member_class_pass_repository,
    credit_transaction_repository
)
from app.repositories.attendance import attendance_repository
from app.repositories.inventory import product_repository, stock_movement_repository, product_sale_repository
from app.repositories.retention import retention_risk_repository, retention_task_repository
from app.repositories.marketing import (
    marketing_campaign_repository,
    campaign_recipient_repository,
    campaign_event_repository,
    audience_repository
)
