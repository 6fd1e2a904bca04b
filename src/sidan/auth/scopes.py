"""Scope names and the fixed member-type to scope mapping."""

from sidan.auth.models import MemberType

READ_MEMBER = "read:member"
WRITE_MEMBER = "write:member"
WRITE_EMAIL = "write:email"
WRITE_IMAGE = "write:image"
MODIFY_ENTRY = "modify:entry"

_SCOPES_BY_TYPE: dict[MemberType, list[str]] = {
    MemberType.MEMBER: [READ_MEMBER, WRITE_MEMBER, WRITE_EMAIL, WRITE_IMAGE, MODIFY_ENTRY],
    MemberType.PROSPECT: [READ_MEMBER, WRITE_EMAIL, WRITE_IMAGE],
}


def scopes_for_member_type(member_type: MemberType | str) -> list[str]:
    """Scopes granted to a member type.

    Example:
        >>> scopes_for_member_type("prospect")
        ['read:member', 'write:email', 'write:image']
        >>> scopes_for_member_type("suspect")
        []
    """
    try:
        member_type = MemberType(member_type)
    except ValueError:
        return []
    return list(_SCOPES_BY_TYPE.get(member_type, []))
