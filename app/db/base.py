# Importar todos los modelos para que Base.metadata los conozca
from app.db.base_class import Base  # noqa
from app.models.user import User  # noqa
from app.models.member import Member, Trainer  # noqa
from app.models.schedule import (
    GymClass,
    ClassSchedule,
    ClassBooking,
    ClassWaitlist,
    InstructorRating
)  # noqa
from app.models.membership import MembershipPlan, Membership  # noqa
from app.models.discount import DiscountCode  # noqa
from app.models.credits import ClassPackage, MemberClassPass, ClassCreditTransaction  # noqa
from app.models.attendance import Attendance  # noqa
from app.models.inventory import Product, StockMovement, ProductSale, ProductSaleItem  # noqa
from app.models.retention import MemberRetentionRisk, RetentionTask  # noqa
from app.models.marketing import MarketingCampaign, CampaignRecipient, CampaignEvent  # noqa
