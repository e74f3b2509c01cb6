"""
machinecfg: a cross-platform meta package-manager.

A repository of package sets is installed, updated, uninstalled or linked by
running installer-specific shell commands selected by platform and package kind.
"""

APP_NAME = "machinecfg"

# Prefix for template variables projected into a command's environment.
ENV_PREFIX = "MACHINECFG"

__version__ = "0.2.0"

__all__ = ["APP_NAME", "ENV_PREFIX", "__version__"]
