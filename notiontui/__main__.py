"""Main entry point when executing notiontui as a package.

This allows running the package using python -m notiontui.
"""

from notiontui.main import cli_entry_point

if __name__ == "__main__":
    cli_entry_point()
