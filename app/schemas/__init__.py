from app.schemas.common import PaginatedResponse, MessageResponse
from app.schemas.member import Member, MemberCreate, MemberUpdate, Trainer, TrainerCreate
from app.schemas.schedule import (
    GymClass,
    GymClassCreate,
    GymClassUpdate,
    ClassSchedule,
    ClassScheduleCreate,
    ClassScheduleUpdate,
    ClassScheduleWithAvailability,
    Booking,
    BookingCreate,
    WaitlistEntry,
    WaitlistJoin
)
from app.schemas.membership import (
    MembershipPlan,
    MembershipPlanCreate,
    MembershipPlanUpdate,
    Membership,
    MembershipAssign,
    PriceBreakdown
)
from app.schemas.discount import DiscountCode, DiscountCodeCreate, DiscountCodeUpdate
from app.schemas.credits import ClassPackage, ClassPackageCreate, MemberClassPass, MemberCredits
from app.schemas.attendance import Attendance, CheckInRequest, QRCheckInRequest
from app.schemas.inventory import Product, ProductCreate, ProductUpdate, Sale, SaleCreate
from app.schemas.retention import MemberRetentionRisk, RetentionTask
