from .auth import LoginResponse, login, logout
from .oauth import OAuth2Handler

__all__ = ["LoginResponse", "OAuth2Handler", "login", "logout"]
