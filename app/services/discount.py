from typing import List, Optional, Tuple
from datetime import datetime
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, DiscountCodeInvalidError, NotFoundError, ValidationError
from app.core.timezone_utils import utcnow, to_naive_utc
from app.models.discount import DiscountCode, DiscountType
from app.repositories.discount import discount_code_repository
from app.schemas import discount as discount_schemas
from app.schemas.membership import PriceBreakdown

logger = logging.getLogger(__name__)


class DiscountService:
    """
    Gestión y canje de códigos de descuento.

    El canje valida en orden: existencia, activo, ventana de vigencia y cupo.
    El incremento de `used_count` es una sentencia UPDATE condicionada, por lo
    que dos canjes concurrentes nunca superan `max_redemptions`.
    """

    def create_code(self, db: Session, *, code_in: discount_schemas.DiscountCodeCreate) -> DiscountCode:
        if discount_code_repository.get_by_code(db, code=code_in.code):
            raise ConflictError(f"El código {code_in.code} ya existe")
        data = code_in.model_dump()
        data["starts_at"] = to_naive_utc(data["starts_at"])
        data["ends_at"] = to_naive_utc(data["ends_at"])
        try:
            code = discount_code_repository.create(db, obj_in=data)
        except IntegrityError:
            db.rollback()
            raise ConflictError(f"El código {code_in.code} ya existe")
        logger.info(f"Código de descuento creado: {code.code} ({code.type.value} {code.amount})")
        return code

    def get_code(self, db: Session, code_id: int) -> DiscountCode:
        code = discount_code_repository.get(db, id=code_id)
        if not code:
            raise NotFoundError(f"Código de descuento con ID {code_id} no encontrado")
        return code

    def list_codes(
        self, db: Session, *, is_active: Optional[bool] = None, page: int = 1, limit: int = 20
    ) -> Tuple[List[DiscountCode], int]:
        return discount_code_repository.get_page(db, page=page, limit=limit, filters={"is_active": is_active})

    def update_code(
        self, db: Session, *, code_id: int, code_in: discount_schemas.DiscountCodeUpdate
    ) -> DiscountCode:
        code = self.get_code(db, code_id)
        update_data = code_in.model_dump(exclude_unset=True)
        for field in ("starts_at", "ends_at"):
            if field in update_data:
                update_data[field] = to_naive_utc(update_data[field])

        amount = update_data.get("amount", code.amount)
        if code.type == DiscountType.PERCENTAGE and amount > 100:
            raise ValidationError("Un descuento porcentual no puede superar 100")
        starts_at = update_data.get("starts_at", code.starts_at)
        ends_at = update_data.get("ends_at", code.ends_at)
        if starts_at and ends_at and ends_at <= starts_at:
            raise ValidationError("ends_at debe ser posterior a starts_at")
        max_redemptions = update_data.get("max_redemptions", code.max_redemptions)
        if max_redemptions is not None and max_redemptions < code.used_count:
            raise ValidationError(
                f"max_redemptions no puede ser menor que los usos actuales ({code.used_count})"
            )

        code = discount_code_repository.update(db, db_obj=code, obj_in=update_data)
        logger.info(f"Código de descuento {code.code} actualizado")
        return code

    def delete_code(self, db: Session, code_id: int) -> DiscountCode:
        """Los códigos ya canjeados solo se desactivan para conservar el historial."""
        code = self.get_code(db, code_id)
        if discount_code_repository.is_referenced(db, code_id=code_id):
            code.is_active = False
            db.commit()
            db.refresh(code)
            logger.info(f"Código {code.code} desactivado (tiene canjes asociados)")
            return code
        discount_code_repository.remove(db, id=code_id)
        logger.info(f"Código {code.code} eliminado")
        return code

    def validate_code(self, db: Session, code: str, now: Optional[datetime] = None,
                      for_update: bool = False) -> DiscountCode:
        """
        Comprueba que el código es canjeable en `now`.

        Raises:
            NotFoundError: el código no existe
            DiscountCodeInvalidError: con reason INACTIVE, NOT_STARTED, EXPIRED o EXHAUSTED
        """
        now = now or utcnow()
        discount = discount_code_repository.get_by_code(db, code=code, for_update=for_update)
        if not discount:
            raise NotFoundError(f"Código de descuento {code.strip().upper()} no encontrado")
        if not discount.is_active:
            raise DiscountCodeInvalidError("El código de descuento no está activo", DiscountCodeInvalidError.INACTIVE)
        if discount.starts_at and now < discount.starts_at:
            raise DiscountCodeInvalidError("El código de descuento aún no es válido", DiscountCodeInvalidError.NOT_STARTED)
        if discount.ends_at and now > discount.ends_at:
            raise DiscountCodeInvalidError("El código de descuento ha caducado", DiscountCodeInvalidError.EXPIRED)
        if discount.is_exhausted:
            raise DiscountCodeInvalidError("El código de descuento está agotado", DiscountCodeInvalidError.EXHAUSTED)
        return discount

    def preview(self, db: Session, *, code: str, price_cents: int, now: Optional[datetime] = None) -> PriceBreakdown:
        """Calcula el precio con descuento sin consumir el código."""
        discount = self.validate_code(db, code, now)
        amount = discount.compute_discount(price_cents)
        return PriceBreakdown(
            code=discount.code,
            original_price_cents=price_cents,
            discount_cents=amount,
            final_price_cents=max(0, price_cents - amount),
        )

    def redeem(
        self, db: Session, *, code: str, price_cents: int, now: Optional[datetime] = None
    ) -> Tuple[DiscountCode, PriceBreakdown]:
        """
        Valida y consume un uso del código dentro de la transacción actual.
        No hace commit: el llamador confirma junto con la operación que lo usa.
        """
        discount = self.validate_code(db, code, now, for_update=True)
        if not discount_code_repository.try_increment_usage(db, code_id=discount.id):
            logger.warning(f"Canje rechazado por cupo agotado: {discount.code}")
            raise DiscountCodeInvalidError("El código de descuento está agotado", DiscountCodeInvalidError.EXHAUSTED)
        db.refresh(discount)

        amount = discount.compute_discount(price_cents)
        breakdown = PriceBreakdown(
            code=discount.code,
            original_price_cents=price_cents,
            discount_cents=amount,
            final_price_cents=max(0, price_cents - amount),
        )
        logger.info(
            f"Código {discount.code} canjeado ({discount.used_count}/{discount.max_redemptions}): "
            f"{price_cents} -> {breakdown.final_price_cents}"
        )
        return discount, breakdown

    def usage_report(self, db: Session) -> List[discount_schemas.DiscountUsage]:
        codes = db.query(DiscountCode).order_by(DiscountCode.code).all()
        totals = discount_code_repository.total_discount_by_code(db, code_ids=[c.id for c in codes])
        return [
            discount_schemas.DiscountUsage(
                code_id=c.id,
                code=c.code,
                type=c.type,
                used_count=c.used_count,
                max_redemptions=c.max_redemptions,
                remaining_redemptions=(
                    max(0, c.max_redemptions - c.used_count) if c.max_redemptions is not None else None
                ),
                total_discount_cents=totals.get(c.id, 0),
                is_active=c.is_active,
            )
            for c in codes
        ]


discount_service = DiscountService()
