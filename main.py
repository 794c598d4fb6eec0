# Nuitka project options for reproducible builds
#
# Standalone build on every platform
# nuitka-project: --standalone
#
# PySide6 plugin with the common Qt plugins
# nuitka-project: --enable-plugin=pyside6
# nuitka-project: --include-qt-plugins=sensible,styles
#
# Keep tests out of the distribution
# nuitka-project: --follow-imports
# nuitka-project: --nofollow-import-to=tests
#
# Output location and cleanup
# nuitka-project: --output-dir=dist
# nuitka-project: --remove-output
#
# Hide the console window on Windows
# nuitka-project-if: {OS} == "Windows":
#    nuitka-project: --windows-console-mode=disable

"""Application entry point for the ETL job monitor."""

from app import run


if __name__ == "__main__":
    run()
