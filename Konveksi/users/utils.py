from typing import Optional

from django.contrib.auth.models import Group

ROLE_ALIASES = {
    # Legacy labels used by the workshop before roles were normalized
    "admin": "admin_staff",
    "staff": "admin_staff",
    "owner": "manager",
    "penjahit": "tailor",
    "pembelian": "purchasing",
}

KNOWN_ROLES = {'manager', 'admin_staff', 'purchasing', 'tailor'}


def canonical_role(value: Optional[str]) -> Optional[str]:
    """Normalize a role label or alias to its canonical slug."""
    if not value:
        return None
    s = str(value).strip().lower()
    if s in KNOWN_ROLES:
        return s
    return ROLE_ALIASES.get(s)


def get_user_role(user) -> Optional[str]:
    """
    Resolve a user's role:
    1) superusers are managers;
    2) ``user.role`` (slug or alias);
    3) fall back to Django groups named after a role.
    """
    if user is None or not getattr(user, "is_authenticated", False):
        return None
    if getattr(user, "is_superuser", False):
        return "manager"

    role = canonical_role(getattr(user, "role", None))
    if role is not None:
        return role

    for g in Group.objects.filter(user=user):
        cand = canonical_role(g.name)
        if cand is not None:
            return cand
    return None