from .seals import Seal, SealMovement
from .auth import User, SessionToken, ROLE_ADMIN, ROLE_GESTOR, VALID_ROLES
from .sites import City
from .settings import AppSetting

__all__ = [
    'Seal', 'SealMovement',
    'User', 'SessionToken', 'ROLE_ADMIN', 'ROLE_GESTOR', 'VALID_ROLES',
    'City',
    'AppSetting',
]
