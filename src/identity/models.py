from dataclasses import dataclass
from typing import Union

USER = "user"
ANONYMOUS = "anonymous"


@dataclass(frozen=True)
class UserIdentity:
    user_id: str

    @property
    def kind(self) -> str:
        return USER

    @property
    def value(self) -> str:
        return self.user_id


@dataclass(frozen=True)
class AnonymousIdentity:
    address: str

    @property
    def kind(self) -> str:
        return ANONYMOUS

    @property
    def value(self) -> str:
        return self.address


Identity = Union[UserIdentity, AnonymousIdentity]


def is_anonymous(identity: Identity) -> bool:
    return isinstance(identity, AnonymousIdentity)
