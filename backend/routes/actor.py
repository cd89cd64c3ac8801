"""
OXA CRM - Utilisateur courant

L'authentification est assurée en amont; l'identité arrive par en-têtes
et est transmise explicitement aux services (Actor).
"""

from typing import Optional
from urllib.parse import unquote

from fastapi import Header

from models.history import Actor, SYSTEM_ACTOR


async def get_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
) -> Actor:
    """Actor depuis X-User-Id / X-User-Name (Système si absent)"""
    if not x_user_id:
        return SYSTEM_ACTOR
    return Actor(user_id=x_user_id, user_name=unquote(x_user_name) if x_user_name else x_user_id)
