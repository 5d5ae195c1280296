"""Build-tool collaborator: dependency listings and version edits via sbt."""

from steward.buildtool.sbt import (
    BuildTool,
    BuildToolError,
    Dependency,
    SbtBuildTool,
    install_global_plugins,
    parse_dependency_json,
    parse_dependency_updates,
)

__all__ = [
    "BuildTool",
    "BuildToolError",
    "Dependency",
    "SbtBuildTool",
    "install_global_plugins",
    "parse_dependency_json",
    "parse_dependency_updates",
]
