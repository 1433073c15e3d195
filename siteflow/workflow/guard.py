from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Mapping, Tuple

from siteflow.domain.contracts import Caller
from siteflow.errors import ForbiddenError
from siteflow.policies import ADMIN, PROJECT_MANAGER, STORE_MANAGER, normalize_role
from siteflow.workflow.states import Transition


@dataclass(frozen=True)
class RoleIn:
    roles: FrozenSet[str]

    def allows(self, caller: Caller, record: Mapping[str, Any]) -> bool:
        return normalize_role(caller.role, default="") in self.roles

    def describe(self) -> str:
        return "role in " + ", ".join(sorted(self.roles))


@dataclass(frozen=True)
class IsRequester:
    def allows(self, caller: Caller, record: Mapping[str, Any]) -> bool:
        requester = record.get("requested_by_id")
        if requester is None or caller.user_id is None:
            return False
        return str(requester) == str(caller.user_id)

    def describe(self) -> str:
        return "original requester"


def role_in(*roles: str) -> RoleIn:
    return RoleIn(frozenset(roles))


ActorSet = Tuple[Any, ...]


TRANSITION_ACTORS: Dict[Transition, ActorSet] = {
    Transition.APPROVE: (role_in(ADMIN, PROJECT_MANAGER),),
    Transition.REJECT: (role_in(ADMIN, PROJECT_MANAGER),),
    Transition.ISSUE: (role_in(ADMIN, STORE_MANAGER),),
    Transition.ACKNOWLEDGE: (IsRequester(),),
    Transition.COMPLETE: (role_in(ADMIN), IsRequester()),
    Transition.CANCEL: (role_in(ADMIN), IsRequester()),
}


def actors_for(
    transition: Transition, overrides: Mapping[Transition, ActorSet] | None = None
) -> ActorSet:
    if overrides and transition in overrides:
        return tuple(overrides[transition])
    return TRANSITION_ACTORS.get(transition, ())


def can_perform(
    transition: Transition,
    caller: Caller,
    record: Mapping[str, Any],
    overrides: Mapping[Transition, ActorSet] | None = None,
) -> bool:
    return any(predicate.allows(caller, record) for predicate in actors_for(transition, overrides))


def authorize(
    transition: Transition,
    caller: Caller,
    record: Mapping[str, Any],
    overrides: Mapping[Transition, ActorSet] | None = None,
) -> None:
    if can_perform(transition, caller, record, overrides):
        return
    allowed = " or ".join(predicate.describe() for predicate in actors_for(transition, overrides))
    raise ForbiddenError(
        details=f"{transition.value} requires {allowed or 'an allowed actor'}.",
    )
