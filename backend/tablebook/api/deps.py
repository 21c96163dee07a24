"""
Shared request dependencies: caller identity and the camelCase wire model.

Authentication lives upstream; it attaches the caller as X-User-Id / X-User-Type headers.
"""
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from tablebook.core.constants import USER_TYPE_RESTAURANT, USER_TYPE_USER
from tablebook.core.errors import NotPermitted
from tablebook.models.branch import Branch


class WireModel(BaseModel):
    """Request body base: camelCase on the wire, snake_case accepted too."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


@dataclass
class Requester:
    user_id: int
    user_type: str

    @property
    def is_operator(self) -> bool:
        return self.user_type == USER_TYPE_RESTAURANT


def get_requester(
    x_user_id: int | None = Header(None, alias="X-User-Id"),
    x_user_type: str = Header(USER_TYPE_USER, alias="X-User-Type"),
) -> Requester:
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    user_type = (x_user_type or USER_TYPE_USER).strip().lower()
    if user_type not in (USER_TYPE_USER, USER_TYPE_RESTAURANT):
        raise HTTPException(status_code=401, detail=f"Unknown user type {x_user_type!r}")
    return Requester(user_id=x_user_id, user_type=user_type)


def require_operator(requester: Requester = Depends(get_requester)) -> Requester:
    if not requester.is_operator:
        raise HTTPException(status_code=403, detail="Restaurant access required")
    return requester


def ensure_branch_owner(requester: Requester, branch: Branch) -> None:
    if not requester.is_operator or branch.restaurant_id != requester.user_id:
        raise NotPermitted(f"Branch {branch.id} is managed by another restaurant")
