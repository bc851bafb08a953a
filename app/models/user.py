"""
User Model with RBAC.
Users are provisioned by the identity provider; this service only reads them
to resolve approvers and authorize requests.
"""
from sqlalchemy import Column, Integer, String, Enum, DateTime, Boolean, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from app.database import Base


class UserRole(str, enum.Enum):
    """
    User roles, most to least authority:
    - ADMIN: Configures workflow rules and escalation settings
    - EXECUTIVE: Final escalation target
    - HR: HR verification and manual intervention on escalated requests
    - DEPARTMENT_DIRECTOR: Approves for managers in their department
    - MANAGER: Approves for direct reports
    - EMPLOYEE: Self-service access
    """
    ADMIN = "ADMIN"
    EXECUTIVE = "EXECUTIVE"
    HR = "HR"
    DEPARTMENT_DIRECTOR = "DEPARTMENT_DIRECTOR"
    MANAGER = "MANAGER"
    EMPLOYEE = "EMPLOYEE"


APPROVER_ROLES = [
    UserRole.ADMIN,
    UserRole.EXECUTIVE,
    UserRole.HR,
    UserRole.DEPARTMENT_DIRECTOR,
    UserRole.MANAGER,
]


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=True)

    role = Column(Enum(UserRole), default=UserRole.EMPLOYEE, nullable=False)
    position = Column(String, nullable=True)

    department_id = Column(Integer, ForeignKey("departments.id", use_alter=True, name="fk_user_department_id"), nullable=True)
    # Direct line manager; falls back to the department manager when empty
    manager_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=True, index=True)

    # Relationships
    organization = relationship("Organization", back_populates="users")
    department_rel = relationship("Department", foreign_keys=[department_id], back_populates="employees")
    manager = relationship("User", remote_side=[id])
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User {self.email} ({self.role.value})>"

    @property
    def display_name(self) -> str:
        return self.full_name or self.email

    @property
    def department_name(self):
        return self.department_rel.name if self.department_rel else None

    @property
    def can_approve(self) -> bool:
        """Check if user can act as an approver or delegate."""
        return self.role in APPROVER_ROLES
