from __future__ import annotations

from .auth import *
from .phone import *
from .profile import *
