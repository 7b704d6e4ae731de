"""Session layer: SK command driver, PANA authentication, and ECHONET Lite requests."""

from .driver import CommandDriver
from .auth import AuthState, Authenticator
from .request import RequestEngine
