# FILE: app/common_types.py
"""
Module for shared type aliases used across the application.
"""
from datetime import datetime
from typing import Callable, NewType


UserID = NewType("UserID", int) # Identifier assigned by the external user store
Username = NewType("Username", str) # Login name as submitted on an authentication attempt
ActivityLabel = NewType("ActivityLabel", str) # Free-form feature/action label, e.g. "LOGIN"

# Source of "now" for every engine component; injectable so tests can pin time
Clock = Callable[[], datetime]
