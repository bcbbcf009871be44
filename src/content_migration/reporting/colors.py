"""Color names shared by the progress bars, summary tables and status lines.

Values are Rich color names that click also understands, see
https://rich.readthedocs.io/en/stable/appendix/colors.html
"""


class MigrationColors:
    """Palette for push output."""

    STAGE = "magenta"
    BAR = "blue"
    SPINNER = "dark_slate_gray1"
    HEADER = "bold bright_white"
    ERROR = "red"

    # Keyed by RunStatus value
    STATUS = {
        "success": "green",
        "partial_success": "yellow",
        "failure": "red",
    }
