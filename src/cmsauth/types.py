"""Shared datatypes for cmsauth."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Sequence, Tuple, Union


class SignerMode(str, Enum):
    KEYED = "keyed"
    # plain hash over the canonical string, no shared secret
    UNKEYED = "unkeyed"


class KeyPolicy(str, Enum):
    LOGIN = "login"
    ID = "id"
    NAME = "name"
    DN = "dn"
    SORTED_DN = "sorted_dn"


@dataclass
class IdentityRecord:
    dn: str
    dns: list[str] = field(default_factory=list)
    id: int = 0
    login: str = ""
    name: str = ""
    roles: dict[str, list[str]] = field(default_factory=dict)
    sorted_dn: str | None = None

    def describe(self) -> str:
        roles = "".join(f"\n{token}" for tokens in self.roles.values() for token in tokens)
        return (
            f"ID: {self.id}\nLogin: {self.login}\nName: {self.name}\n"
            f"DN: {self.dn}\nDNs: {self.dns}\nRoles: {roles}"
        )

    def to_dict(self) -> JsonDict:
        out = JsonDict({
            "DN": self.dn,
            "DNs": list(self.dns),
            "ID": self.id,
            "LOGIN": self.login,
            "NAME": self.name,
            "ROLES": {role: list(tokens) for role, tokens in self.roles.items()},
        })
        if self.sorted_dn is not None:
            out["SortedDN"] = self.sorted_dn
        return out


@dataclass(frozen=True)
class AuthnResult:
    valid: bool
    reason: str | None = None
    derived_headers: dict[str, list[str]] = field(default_factory=dict)


HeaderInput = Union[
    Dict[str, str],
    Dict[str, Sequence[str]],
    List[Tuple[str, str]],
    List[List[str]],
]


class JsonDict(dict[str, Any]):
    """Typed alias for JSON dictionaries used in internal serialization."""
