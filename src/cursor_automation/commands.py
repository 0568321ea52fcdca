"""
Command-palette commands the automation can run by name.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class PaletteCommand:
    name: str
    description: str
    palette_command: str  # Text typed into the command palette


CURSOR_COMMANDS: dict[str, PaletteCommand] = {
    "openCline": PaletteCommand(
        name="openCline",
        description="Opens a new Cline AI assistant tab",
        palette_command="Cline: Open in New Tab",
    ),
    "openExtensions": PaletteCommand(
        name="openExtensions",
        description="Opens the extensions panel",
        palette_command="Extensions: Install Extensions",
    ),
    "openSettings": PaletteCommand(
        name="openSettings",
        description="Opens Cursor settings",
        palette_command="Preferences: Open Settings",
    ),
    "openTerminal": PaletteCommand(
        name="openTerminal",
        description="Opens a new terminal",
        palette_command="Terminal: Create New Terminal",
    ),
}


def get_palette_command(name: str) -> Optional[str]:
    """Palette text for a command name, or None if unknown."""
    command = CURSOR_COMMANDS.get(name)
    return command.palette_command if command else None
