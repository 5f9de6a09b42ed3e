"""Scope facts and resolution for storeauth.

The graph, identity and grant stores are pure fact providers; the
resolver combines their facts into a ResolvedScope.
"""

from .graph import ScopeGraph, ScopeGraphHolder, ScopeKind, ScopeNode
from .identity import (
    IdentityStore,
    InMemoryIdentityStore,
    ManagerChainHolder,
    Principal,
    RoleAssignment,
)
from .grants import Grant, GrantStore, InMemoryGrantStore
from .resolver import PrincipalFacts, ResolvedScope, ScopeResolver

__all__ = [
    "ScopeGraph",
    "ScopeGraphHolder",
    "ScopeKind",
    "ScopeNode",
    "IdentityStore",
    "InMemoryIdentityStore",
    "ManagerChainHolder",
    "Principal",
    "RoleAssignment",
    "Grant",
    "GrantStore",
    "InMemoryGrantStore",
    "PrincipalFacts",
    "ResolvedScope",
    "ScopeResolver",
]
