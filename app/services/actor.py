from dataclasses import dataclass

from app.models.user import UserRole

STAFF_ROLES = (UserRole.admin.value, UserRole.staff.value)


@dataclass(frozen=True)
class Actor:
    """The authenticated caller an operation is performed on behalf of."""

    id: int
    role: str

    def has_role(self, *roles: str) -> bool:
        return self.role in roles

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @classmethod
    def from_user(cls, user) -> "Actor":
        return cls(id=user.id, role=user.role)
