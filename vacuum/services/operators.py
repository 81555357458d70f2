import logging
from typing import List, Optional

from sqlalchemy import func, select, update

from vacuum.core.config import parse_pubkey
from vacuum.models import Operator, TrackedAccount
from vacuum.schemas.accounts import OperatorView
from vacuum.services.registry import Registry

logger = logging.getLogger(__name__)


def add_operator(
    registry: Registry,
    name: str,
    keypair_path: str,
    treasury_address: str,
    set_default: bool = False,
) -> OperatorView:
    parse_pubkey(treasury_address, "treasury address")
    with registry.session() as session:
        if session.execute(select(Operator).where(Operator.name == name)).scalar_one_or_none():
            raise ValueError(f"Operator {name} already exists")
        if set_default:
            session.execute(update(Operator).values(is_default=0))
        operator = Operator(
            name=name,
            keypair_path=str(keypair_path),
            treasury_address=treasury_address,
            is_default=1 if set_default else 0,
        )
        session.add(operator)
        session.flush()
        session.refresh(operator)
        view = OperatorView.model_validate(operator)
    logger.info("Added operator %s", name)
    return view


def list_operators(registry: Registry) -> List[OperatorView]:
    with registry.session() as session:
        rows = session.execute(select(Operator).order_by(Operator.created_at.desc(), Operator.id.desc())).scalars().all()
        return [OperatorView.model_validate(row) for row in rows]


def get_operator(registry: Registry, operator_id: int) -> Optional[OperatorView]:
    with registry.session() as session:
        row = session.get(Operator, operator_id)
        return OperatorView.model_validate(row) if row else None


def get_operator_by_name(registry: Registry, name: str) -> Optional[OperatorView]:
    with registry.session() as session:
        row = session.execute(select(Operator).where(Operator.name == name)).scalar_one_or_none()
        return OperatorView.model_validate(row) if row else None


def get_default_operator(registry: Registry) -> Optional[OperatorView]:
    """The flagged default, else the oldest operator."""
    with registry.session() as session:
        row = session.execute(select(Operator).where(Operator.is_default == 1)).scalars().first()
        if row is None:
            row = session.execute(select(Operator).order_by(Operator.created_at, Operator.id)).scalars().first()
        return OperatorView.model_validate(row) if row else None


def set_default_operator(registry: Registry, operator_id: int) -> OperatorView:
    with registry.session() as session:
        operator = session.get(Operator, operator_id)
        if not operator:
            raise ValueError("Operator not found")
        session.execute(update(Operator).where(Operator.id != operator_id).values(is_default=0))
        operator.is_default = 1
        session.add(operator)
        session.flush()
        view = OperatorView.model_validate(operator)
    logger.info("Set default operator: %s", view.name)
    return view


def update_operator(
    registry: Registry,
    operator_id: int,
    *,
    name: Optional[str] = None,
    keypair_path: Optional[str] = None,
    treasury_address: Optional[str] = None,
) -> OperatorView:
    if treasury_address:
        parse_pubkey(treasury_address, "treasury address")
    with registry.session() as session:
        operator = session.get(Operator, operator_id)
        if not operator:
            raise ValueError("Operator not found")
        if name:
            operator.name = name
        if keypair_path:
            operator.keypair_path = str(keypair_path)
        if treasury_address:
            operator.treasury_address = treasury_address
        session.add(operator)
        session.flush()
        return OperatorView.model_validate(operator)


def remove_operator(registry: Registry, operator_id: int) -> None:
    with registry.session() as session:
        operator = session.get(Operator, operator_id)
        if not operator:
            raise ValueError("Operator not found")
        tracked = session.execute(
            select(func.count()).select_from(TrackedAccount).where(TrackedAccount.operator_id == operator_id)
        ).scalar_one()
        if tracked:
            raise ValueError(f"Cannot remove operator: {tracked} accounts are tracked. Delete accounts first.")
        session.delete(operator)
    logger.info("Removed operator %s", operator_id)
