"""Participant side of a session: local mirror, drawer authority and transport."""
from .coordinator import ClientConfig, GameCoordinator
from .errors import SessionApiError
from .healer import Healer
from .roles import DrawerRole, GuesserRole, Role
from .state import Phase, SessionState
