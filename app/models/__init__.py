from app.models.user import User, UserRole, UserStatus
from app.models.member import Member, Trainer
from app.models.schedule import (
    GymClass, ClassSchedule, ClassBooking, ClassWaitlist, InstructorRating,
    ClassCategory, BookingStatus, WaitlistStatus
)
from app.models.membership import MembershipPlan, Membership, MembershipStatus
from app.models.discount import DiscountCode, DiscountType
from app.models.credits import (
    ClassPackage, MemberClassPass, ClassCreditTransaction,
    ClassPassStatus, CreditTransactionType
)
from app.models.attendance import Attendance, AttendanceType, CheckInMethod
from app.models.inventory import (
    Product, StockMovement, ProductSale, ProductSaleItem,
    StockMovementType, PaymentMethod
)
from app.models.retention import MemberRetentionRisk, RetentionTask, RiskLevel, RetentionTaskStatus
from app.models.marketing import (
    MarketingCampaign, CampaignRecipient, CampaignEvent,
    CampaignAudience, CampaignChannel, CampaignEventType, CampaignStatus, RecipientStatus
)
