"""
Principal variants.

``Principal`` is either an individual user or a company. Both expose the same
surface (owner reference, claims, DTO) so token minting and response building
are written once.
"""

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Tuple, Union

from app.models.company import Company
from app.models.refresh_token import OwnerRef, PrincipalKind
from app.models.user import User
from app.schemas.auth import CompanyDto, UserDto


@dataclass(frozen=True)
class IndividualPrincipal:
    account: User

    kind: ClassVar[PrincipalKind] = PrincipalKind.USER
    scopes: ClassVar[Tuple[str, ...]] = ("read", "write")

    @property
    def owner(self) -> OwnerRef:
        return OwnerRef(self.kind, self.account.id)

    @property
    def email(self) -> str:
        return self.account.email

    def extra_claims(self) -> Dict[str, Any]:
        return {
            "username": self.account.username,
            "firstName": self.account.first_name,
            "lastName": self.account.last_name,
        }

    def to_dto(self) -> UserDto:
        return UserDto(
            id=self.account.id,
            username=self.account.username,
            first_name=self.account.first_name,
            last_name=self.account.last_name,
            email=self.account.email,
            role=self.account.role or self.kind.value,
            scopes=list(self.scopes),
        )


@dataclass(frozen=True)
class CompanyPrincipal:
    account: Company

    kind: ClassVar[PrincipalKind] = PrincipalKind.COMPANY
    scopes: ClassVar[Tuple[str, ...]] = ("read", "write", "manage")

    @property
    def owner(self) -> OwnerRef:
        return OwnerRef(self.kind, self.account.id)

    @property
    def email(self) -> str:
        return self.account.email

    def extra_claims(self) -> Dict[str, Any]:
        return {
            "name": self.account.name,
            "category": self.account.category,
        }

    def to_dto(self) -> CompanyDto:
        return CompanyDto(
            id=self.account.id,
            name=self.account.name,
            email=self.account.email,
            description=self.account.description or "",
            cui=self.account.cui,
            category=self.account.category or "",
            role=self.kind.value,
            scopes=list(self.scopes),
            created_at=self.account.created_at,
            is_active=self.account.is_active,
        )


Principal = Union[IndividualPrincipal, CompanyPrincipal]


def principal_for(account: Union[User, Company]) -> Principal:
    if isinstance(account, User):
        return IndividualPrincipal(account)
    return CompanyPrincipal(account)
