from typing import List, Optional

from .errors import ValidationError


def parse_id(value) -> Optional[int]:
    """Accept integer ids and their decimal string form from request input."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        parsed = int(value.strip())
        return parsed if parsed > 0 else None
    return None


def normalize_member_ids(raw_member_ids, required_member_id: int) -> List[int]:
    """
    Build the ordered, de-duplicated member id list for a team.

    Anything other than a list counts as no members. The required member
    (registering user or team leader) is appended when missing.
    """
    member_ids = []
    seen = set()
    if isinstance(raw_member_ids, list):
        for raw in raw_member_ids:
            member_id = parse_id(raw)
            if member_id is None:
                raise ValidationError('Validation failed', f'Invalid member id: {raw!r}')
            if member_id not in seen:
                seen.add(member_id)
                member_ids.append(member_id)

    if required_member_id not in seen:
        member_ids.append(required_member_id)
    return member_ids
