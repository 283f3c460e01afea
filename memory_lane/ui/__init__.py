"""Terminal front-ends for inspecting the catalog."""

from .console import ConsoleUI
from .modern import ModernUI

__all__ = ["ConsoleUI", "ModernUI"]
