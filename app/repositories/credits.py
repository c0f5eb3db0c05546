from typing import List
from datetime import datetime
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.repositories.base import BaseRepository
from app.models.credits import ClassPackage, MemberClassPass, ClassCreditTransaction, ClassPassStatus
from app.schemas.credits import ClassPackageCreate, PackagePurchase


class ClassPackageRepository(BaseRepository[ClassPackage, ClassPackageCreate, ClassPackageCreate]):
    def get_active(self, db: Session) -> List[ClassPackage]:
        return db.query(ClassPackage).filter(ClassPackage.is_active == True).order_by(ClassPackage.id).all()


class MemberClassPassRepository(BaseRepository[MemberClassPass, PackagePurchase, PackagePurchase]):
    def get_usable(
        self, db: Session, *, member_id: int, class_id: int, now: datetime, for_update: bool = False
    ) -> List[MemberClassPass]:
        """
        Pases ACTIVE, no caducados y aplicables a la clase (sin restricción o
        limitados a esta clase). Con `for_update` las filas quedan bloqueadas
        hasta el final de la transacción.
        """
        query = db.query(MemberClassPass).filter(
            MemberClassPass.member_id == member_id,
            MemberClassPass.status == ClassPassStatus.ACTIVE,
            or_(MemberClassPass.expires_at.is_(None), MemberClassPass.expires_at > now),
            or_(MemberClassPass.class_id.is_(None), MemberClassPass.class_id == class_id)
        )
        if for_update:
            query = query.populate_existing().with_for_update()
        return query.order_by(MemberClassPass.id).all()

    def get_active_for_member(self, db: Session, *, member_id: int, now: datetime) -> List[MemberClassPass]:
        return db.query(MemberClassPass).filter(
            MemberClassPass.member_id == member_id,
            MemberClassPass.status == ClassPassStatus.ACTIVE,
            or_(MemberClassPass.expires_at.is_(None), MemberClassPass.expires_at > now)
        ).order_by(MemberClassPass.expires_at.is_(None), MemberClassPass.expires_at, MemberClassPass.id).all()


class ClassCreditTransactionRepository(BaseRepository[ClassCreditTransaction, PackagePurchase, PackagePurchase]):
    def get_by_member(self, db: Session, *, member_id: int, limit: int = 100) -> List[ClassCreditTransaction]:
        return db.query(ClassCreditTransaction).filter(
            ClassCreditTransaction.member_id == member_id
        ).order_by(ClassCreditTransaction.id.desc()).limit(limit).all()


class_package_repository = ClassPackageRepository(ClassPackage)
member_class_pass_repository = MemberClassPassRepository(MemberClassPass)
credit_transaction_repository = ClassCreditTransactionRepository(ClassCreditTransaction)
