"""
PeakAuth

Browser-driven login and token lifecycle management for the TrainingPeaks platform.
"""

__version__ = "0.1.0"

# Import only what's needed for initialization
from peakauth.utils.logger import configure_logging, get_logger

# Initialize logger first
logger = get_logger(__name__)

from peakauth.auth.client import PeakAuthClient
from peakauth.core.codex import AuthToken, Credentials, Session, User
from peakauth.core.config import Config
from peakauth.core.errors import (
    ConfigurationError, FieldNotFoundFailure, IncompleteDataFailure, InvalidCredentialsFailure,
    LaunchFailure, LoginError, PeakAuthError, TimeoutFailure
)

__all__ = [
    'PeakAuthClient',
    'Config',
    'Credentials',
    'AuthToken',
    'Session',
    'User',
    'PeakAuthError',
    'ConfigurationError',
    'LoginError',
    'LaunchFailure',
    'FieldNotFoundFailure',
    'InvalidCredentialsFailure',
    'TimeoutFailure',
    'IncompleteDataFailure',
    'configure_logging',
    'logger',
    '__version__',
]
