"""
catequesis_api.api.policies

Route policy table for every gated endpoint.

Responsibilities:
- Declare allowed roles, parish scoping, credential-change exemption and limiter per action.
- Serve as the single source for the credential-change allow-list.
"""

from __future__ import annotations

from catequesis_api.auth.models import Role
from catequesis_api.gating.policy import (
    CREDENTIAL_CHANGE_LIMITER,
    LOGIN_LIMITER,
    RoutePolicy,
    RoutePolicyRegistry,
)

STAFF = (Role.admin, Role.parroco, Role.secretaria, Role.catequista)
EVERY_ROLE = (*STAFF, Role.consulta)

API_INFO = RoutePolicy(action="API_INFO")

# Auth
LOGIN = RoutePolicy(action="LOGIN", limiter=LOGIN_LIMITER, public=True)
GET_PROFILE = RoutePolicy(action="GET_PROFILE", credential_change_exempt=True)
UPDATE_PROFILE = RoutePolicy(action="UPDATE_PROFILE")
CHANGE_PASSWORD = RoutePolicy(
    action="CHANGE_PASSWORD",
    credential_change_exempt=True,
    limiter=CREDENTIAL_CHANGE_LIMITER,
)
LOGOUT = RoutePolicy(action="LOGOUT", credential_change_exempt=True)
REFRESH_TOKEN = RoutePolicy(action="REFRESH_TOKEN")
VERIFY_TOKEN = RoutePolicy(action="VERIFY_TOKEN")

# Parishes
LIST_PARISHES = RoutePolicy.for_roles("GET_PARROQUIAS", *EVERY_ROLE, parish_scoped=True)
GET_PARISH = RoutePolicy.for_roles("GET_PARROQUIA", *STAFF, parish_scoped=True)
CREATE_PARISH = RoutePolicy.for_roles("CREATE_PARROQUIA", Role.admin, Role.parroco)

# Users (non-admins are confined to their own parish)
LIST_USERS = RoutePolicy.for_roles(
    "GET_USUARIOS", Role.admin, Role.parroco, Role.secretaria, parish_scoped=True
)
CREATE_USER = RoutePolicy.for_roles("CREATE_USUARIO", Role.admin, Role.parroco, parish_scoped=True)
TOGGLE_USER_STATUS = RoutePolicy.for_roles(
    "TOGGLE_USUARIO_STATUS", Role.admin, Role.parroco, parish_scoped=True
)
UNLOCK_USER = RoutePolicy.for_roles(
    "DESBLOQUEAR_USUARIO", Role.admin, Role.parroco, parish_scoped=True
)
RESET_USER_PASSWORD = RoutePolicy.for_roles(
    "RESET_PASSWORD_USUARIO", Role.admin, Role.parroco, parish_scoped=True
)
CLEAR_EXPIRED_LOCKS = RoutePolicy.for_roles("LIMPIAR_BLOQUEOS", Role.admin)

ROUTE_POLICIES = RoutePolicyRegistry(
    [
        API_INFO,
        LOGIN,
        GET_PROFILE,
        UPDATE_PROFILE,
        CHANGE_PASSWORD,
        LOGOUT,
        REFRESH_TOKEN,
        VERIFY_TOKEN,
        LIST_PARISHES,
        GET_PARISH,
        CREATE_PARISH,
        LIST_USERS,
        CREATE_USER,
        TOGGLE_USER_STATUS,
        UNLOCK_USER,
        RESET_USER_PASSWORD,
        CLEAR_EXPIRED_LOCKS,
    ]
)
