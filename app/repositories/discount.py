from typing import Dict, List, Optional
from sqlalchemy import update, func, or_
from sqlalchemy.orm import Session

from app.repositories.base import BaseRepository
from app.models.discount import DiscountCode
from app.models.membership import Membership
from app.schemas.discount import DiscountCodeCreate, DiscountCodeUpdate, normalize_code


class DiscountCodeRepository(BaseRepository[DiscountCode, DiscountCodeCreate, DiscountCodeUpdate]):
    def get_by_code(self, db: Session, *, code: str, for_update: bool = False) -> Optional[DiscountCode]:
        query = db.query(DiscountCode).filter(DiscountCode.code == normalize_code(code))
        if for_update:
            query = query.populate_existing().with_for_update()
        return query.first()

    def try_increment_usage(self, db: Session, *, code_id: int) -> bool:
        """
        Incrementa used_count en una única sentencia condicionada a que quede
        cupo. Devuelve False si el código ya estaba agotado.
        """
        result = db.execute(
            update(DiscountCode)
            .where(
                DiscountCode.id == code_id,
                or_(
                    DiscountCode.max_redemptions.is_(None),
                    DiscountCode.used_count < DiscountCode.max_redemptions
                )
            )
            .values(used_count=DiscountCode.used_count + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def total_discount_by_code(self, db: Session, *, code_ids: List[int]) -> Dict[int, int]:
        if not code_ids:
            return {}
        rows = db.query(Membership.discount_code_id, func.sum(Membership.discount_cents)).filter(
            Membership.discount_code_id.in_(code_ids)
        ).group_by(Membership.discount_code_id).all()
        return {code_id: int(total or 0) for code_id, total in rows}

    def is_referenced(self, db: Session, *, code_id: int) -> bool:
        query = db.query(Membership.id).filter(Membership.discount_code_id == code_id)
        return db.query(query.exists()).scalar()


discount_code_repository = DiscountCodeRepository(DiscountCode)
