from enum import Enum
from typing import Iterable, Optional, Union


class PlatformRole(str, Enum):
    USER = "user"
    HACKATHON_CREATOR = "hackathon_creator"
    ADMIN = "admin"


class HackathonRoleType(str, Enum):
    ORGANIZER = "organizer"
    JUDGE = "judge"
    MENTOR = "mentor"
    PARTICIPANT = "participant"


RoleLike = Union[str, Enum, None]


def _platform(role: RoleLike) -> PlatformRole:
    try:
        return PlatformRole(role)
    except ValueError:
        return PlatformRole.USER


def _hackathon(role: RoleLike) -> Optional[HackathonRoleType]:
    if role is None:
        return None
    try:
        return HackathonRoleType(role)
    except ValueError:
        return None


def parse_hackathon_role(value) -> Optional[HackathonRoleType]:
    """Parse a role name from request input; None when it is not a known role."""
    if not isinstance(value, str):
        return None
    return _hackathon(value.strip().lower())


def is_privileged(platform_role: RoleLike, hackathon_role: RoleLike = None) -> bool:
    """Platform admins and organizers of the hackathon may act on any team in it."""
    return (
        _platform(platform_role) is PlatformRole.ADMIN
        or _hackathon(hackathon_role) is HackathonRoleType.ORGANIZER
    )


def can_create_hackathon(platform_role: RoleLike) -> bool:
    return _platform(platform_role) in (PlatformRole.ADMIN, PlatformRole.HACKATHON_CREATOR)


def can_edit_team(user_id: int, leader_id: int,
                  platform_role: RoleLike, hackathon_role: RoleLike = None) -> bool:
    return user_id == leader_id or is_privileged(platform_role, hackathon_role)


def can_withdraw_team(user_id: int, member_ids: Iterable[int],
                      platform_role: RoleLike, hackathon_role: RoleLike = None) -> bool:
    return user_id in set(member_ids) or is_privileged(platform_role, hackathon_role)


def can_manage_roles(platform_role: RoleLike, hackathon_role: RoleLike = None) -> bool:
    return is_privileged(platform_role, hackathon_role)


def can_view_members(platform_role: RoleLike, hackathon_role: RoleLike = None) -> bool:
    """Any role holder in the hackathon can see its member list."""
    return _platform(platform_role) is PlatformRole.ADMIN or _hackathon(hackathon_role) is not None
