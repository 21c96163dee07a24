"""
Branch registry: the minimal branch record every booking concern hangs off, plus the
branch-local clock (slot times are naive wall-clock in the branch timezone).
"""
import logging
from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from tablebook.config import settings
from tablebook.core.errors import BranchNotFound, InvalidSettings
from tablebook.models.branch import Branch

logger = logging.getLogger(__name__)


def resolve_timezone(tz_name: str | None) -> ZoneInfo:
    name = tz_name or settings.default_timezone
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r; falling back to %s", name, settings.default_timezone)
        return ZoneInfo(settings.default_timezone)


def branch_now(branch: Branch, now: datetime | None = None) -> datetime:
    """
    Current wall-clock time at the branch as a naive datetime.
    A naive `now` is taken as already branch-local; an aware one is converted.
    """
    if now is not None and now.tzinfo is None:
        return now
    tz = resolve_timezone(branch.timezone)
    if now is None:
        return datetime.now(tz).replace(tzinfo=None)
    return now.astimezone(tz).replace(tzinfo=None)


def create_branch(
    db: Session,
    restaurant_id: int,
    name: str,
    address: str | None = None,
    city: str | None = None,
    timezone: str | None = None,
) -> Branch:
    tz_name = (timezone or settings.default_timezone).strip()
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise InvalidSettings(f"Unknown timezone: {tz_name}") from None
    branch = Branch(
        restaurant_id=restaurant_id,
        name=name.strip(),
        address=address,
        city=city,
        timezone=tz_name,
    )
    db.add(branch)
    db.commit()
    db.refresh(branch)
    logger.info("Created branch %s (%s) for restaurant %s", branch.id, branch.name, restaurant_id)
    return branch


def get_branch(db: Session, branch_id: int) -> Branch | None:
    return db.query(Branch).filter(Branch.id == branch_id).first()


def require_branch(db: Session, branch_id: int) -> Branch:
    branch = get_branch(db, branch_id)
    if branch is None:
        raise BranchNotFound(f"Branch {branch_id} not found")
    return branch


def list_branches(db: Session, restaurant_id: int | None = None) -> list[Branch]:
    q = db.query(Branch)
    if restaurant_id is not None:
        q = q.filter(Branch.restaurant_id == restaurant_id)
    return q.order_by(Branch.id.asc()).all()
