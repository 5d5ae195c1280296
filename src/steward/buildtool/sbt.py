"""sbt build-tool collaborator.

Runs sbt as an async subprocess with timeout enforcement to answer the
three questions the pipeline asks a build:
- which dependencies have newer versions (sbt-updates' dependencyUpdates)
- which dependencies are declared directly (libraryDependenciesAsJson)
- rewrite the declared version of one dependency

Both sbt plugins are installed globally once per run by
install_global_plugins(), before any repository is processed.
"""

import asyncio
import json
import logging
import re
import time
from pathlib import Path
from typing import Dict, List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from steward.models import Update
from steward.process import kill_process

logger = logging.getLogger(__name__)

DEFAULT_BUILD_TIMEOUT_SECONDS = 1800

SBT_UPDATES_PLUGIN = 'addSbtPlugin("com.timushev.sbt" % "sbt-updates" % "0.6.4")\n'

STEWARD_PLUGIN_SOURCE = """\
import sbt.Keys._
import sbt._

object StewardPlugin extends AutoPlugin {
  override def trigger: PluginTrigger = allRequirements

  object autoImport {
    val libraryDependenciesAsJson = settingKey[String]("")
  }

  import autoImport._

  private def quote(s: String): String = "\\"" + s + "\\""

  override def projectSettings: Seq[Def.Setting[_]] = Seq(
    libraryDependenciesAsJson := {
      libraryDependencies.value.map { m =>
        val extra = m.extraAttributes.get("e:sbtVersion").map("sbtVersion" -> _).toList
        val entries = List(
          "groupId" -> m.organization,
          "artifactId" -> m.name,
          "version" -> m.revision,
          "scalaVersion" -> m.extraAttributes.getOrElse("e:scalaVersion", scalaVersion.value)
        ) ++ extra
        entries.map { case (k, v) => quote(k) + ": " + quote(v) }.mkString("{ ", ", ", " }")
      }.mkString("[ ", ", ", " ]")
    }
  )
}
"""

# "[info]   org.typelevel:cats-core : 1.0.0 -> 1.1.0 -> 2.0.0"
_UPDATE_LINE_PATTERN = re.compile(
    r"^\[info\]\s+([^\s:]+):([^\s:]+)(?::[^\s:]+)?\s*:\s*(\S+)\s*->\s*(.+?)\s*$"
)
_LOG_PREFIX_PATTERN = re.compile(r"^\[\w+\]\s*")
_ANSI_PATTERN = re.compile(r"\x1b\[[0-9;]*m")


class BuildToolError(Exception):
    """Raised when the build tool cannot be run or its output is unusable.

    Attributes:
        command: The sbt command that was run.
        exit_code: Process exit code (-1 for timeouts/OS errors).
    """

    def __init__(self, message: str, command: str = "", exit_code: int = -1):
        self.command = command
        self.exit_code = exit_code
        super().__init__(message)


class Dependency(BaseModel):
    """A dependency declared directly by a build.

    Attributes:
        group_id: Organization of the dependency.
        artifact_id: Name of the dependency.
        version: Declared version.
        attributes: Extra attributes such as scalaVersion or sbtVersion,
            in the order the build reported them.
    """

    model_config = ConfigDict(frozen=True)

    group_id: str
    artifact_id: str
    version: str
    attributes: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_record(cls, record: Dict[str, str]) -> "Dependency":
        extra = {
            key: value
            for key, value in record.items()
            if key not in ("groupId", "artifactId", "version")
        }
        return cls(
            group_id=record["groupId"],
            artifact_id=record["artifactId"],
            version=record["version"],
            attributes=extra,
        )

    def to_record(self) -> Dict[str, str]:
        return {
            "groupId": self.group_id,
            "artifactId": self.artifact_id,
            "version": self.version,
            **self.attributes,
        }

    def to_json(self) -> str:
        """Render as {"groupId": ..., "artifactId": ..., "version": ...}."""
        return json.dumps(self.to_record())


@runtime_checkable
class BuildTool(Protocol):
    """Protocol of the build-tool operations the pipeline uses."""

    async def list_outdated_dependencies(self, directory: Path) -> List[Update]: ...

    async def list_direct_dependencies(self, directory: Path) -> List[Dependency]: ...

    async def edit_version(self, directory: Path, update: Update) -> bool: ...


def parse_dependency_updates(output: str) -> List[Update]:
    """Parse the report printed by sbt-updates' dependencyUpdates task.

    Multi-project builds report the same update once per project; each
    update is returned once, in order of first appearance.

    Args:
        output: Captured sbt standard output.

    Returns:
        Updates found in the report.
    """
    updates: List[Update] = []
    seen = set()
    for raw_line in output.splitlines():
        match = _UPDATE_LINE_PATTERN.match(_ANSI_PATTERN.sub("", raw_line))
        if match is None:
            continue
        group_id, artifact_id, current, newer = match.groups()
        newer_versions = [v.strip() for v in newer.split("->") if v.strip()]
        key = (group_id, artifact_id, current, tuple(newer_versions))
        if not newer_versions or key in seen:
            continue
        seen.add(key)
        updates.append(
            Update(
                group_id=group_id,
                artifact_id=artifact_id,
                current_version=current,
                newer_versions=newer_versions,
            )
        )
    return updates


def parse_dependency_json(output: str) -> List[Dependency]:
    """Parse the output of the libraryDependenciesAsJson setting.

    Every line holding a JSON array contributes its records; sbt prints
    one array per project.
    """
    dependencies: List[Dependency] = []
    for raw_line in output.splitlines():
        line = _LOG_PREFIX_PATTERN.sub("", _ANSI_PATTERN.sub("", raw_line)).strip()
        if not line.startswith("["):
            continue
        try:
            records = json.loads(line)
        except json.JSONDecodeError:
            continue
        for record in records:
            dependency = Dependency.from_record(record)
            if dependency not in dependencies:
                dependencies.append(dependency)
    return dependencies


def rewrite_version(text: str, update: Update) -> str:
    """Replace the quoted current version on lines naming the artifact."""
    current = f'"{update.current_version}"'
    replacement = f'"{update.next_version}"'
    artifact = f'"{update.artifact_id}"'
    lines = text.splitlines(keepends=True)
    return "".join(
        line.replace(current, replacement) if artifact in line else line
        for line in lines
    )


def install_global_plugins(home: Path) -> Path:
    """Install sbt-updates and the steward plugin into the global sbt plugins.

    Args:
        home: Home directory of the user running sbt.

    Returns:
        The global plugins directory.

    Raises:
        BuildToolError: If the plugin files cannot be written.
    """
    plugins_dir = home / ".sbt" / "1.0" / "plugins"
    try:
        plugins_dir.mkdir(parents=True, exist_ok=True)
        (plugins_dir / "sbt-updates.sbt").write_text(SBT_UPDATES_PLUGIN)
        (plugins_dir / "StewardPlugin.scala").write_text(STEWARD_PLUGIN_SOURCE)
    except OSError as exc:
        raise BuildToolError(f"Failed to install global sbt plugins: {exc}") from exc
    logger.info("Installed global sbt plugins", extra={"plugins_dir": str(plugins_dir)})
    return plugins_dir


class SbtBuildTool:
    """BuildTool implementation backed by the sbt launcher.

    Attributes:
        sbt_path: Filesystem path to the sbt launcher.
        timeout_seconds: Maximum execution time of one sbt invocation.
    """

    def __init__(
        self,
        sbt_path: str = "sbt",
        timeout_seconds: int = DEFAULT_BUILD_TIMEOUT_SECONDS,
    ):
        self.sbt_path = sbt_path
        self.timeout_seconds = timeout_seconds

    async def list_outdated_dependencies(self, directory: Path) -> List[Update]:
        output = await self._run(directory, ";set every credentials := Nil;dependencyUpdates")
        return parse_dependency_updates(output)

    async def list_direct_dependencies(self, directory: Path) -> List[Dependency]:
        output = await self._run(directory, "show libraryDependenciesAsJson")
        return parse_dependency_json(output)

    async def edit_version(self, directory: Path, update: Update) -> bool:
        """Rewrite the version of an update in the build definition.

        Returns:
            True if at least one file changed.
        """
        return await asyncio.to_thread(self._edit_build_files, directory, update)

    def _edit_build_files(self, directory: Path, update: Update) -> bool:
        changed = False
        for build_file in self._build_files(directory):
            try:
                original = build_file.read_text(encoding="utf-8")
                edited = rewrite_version(original, update)
                if edited != original:
                    build_file.write_text(edited, encoding="utf-8")
                    changed = True
                    logger.info(
                        "Updated build file",
                        extra={"file": str(build_file), "update": update.show()},
                    )
            except OSError as exc:
                raise BuildToolError(f"Failed to edit {build_file}: {exc}") from exc
        return changed

    def _build_files(self, directory: Path) -> List[Path]:
        project_dir = directory / "project"
        candidates = list(directory.glob("*.sbt"))
        if project_dir.is_dir():
            candidates.extend(project_dir.glob("*.scala"))
            candidates.extend(project_dir.glob("*.sbt"))
        return sorted(path for path in candidates if path.is_file())

    async def _run(self, directory: Path, command: str) -> str:
        """Run one sbt command in batch mode and return its stdout.

        Raises:
            BuildToolError: If sbt fails, times out or cannot be started.
        """
        start_time = time.monotonic()
        logger.info(
            "Starting sbt",
            extra={"directory": str(directory), "command": command},
        )
        process: Optional[asyncio.subprocess.Process] = None
        try:
            process = await asyncio.create_subprocess_exec(
                self.sbt_path,
                "-batch",
                "-no-colors",
                command,
                cwd=str(directory),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            await kill_process(process)
            raise BuildToolError(
                f"sbt timed out after {self.timeout_seconds}s",
                command=command,
            ) from exc
        except OSError as exc:
            raise BuildToolError(f"Failed to start sbt: {exc}", command=command) from exc
        except asyncio.CancelledError:
            await kill_process(process)
            raise

        duration = time.monotonic() - start_time
        if process.returncode != 0:
            error_output = stderr.decode("utf-8", errors="replace").strip()
            if not error_output:
                error_output = stdout.decode("utf-8", errors="replace").strip()
            logger.error(
                "sbt failed with exit code %d in %.1fs",
                process.returncode,
                duration,
            )
            raise BuildToolError(
                f"sbt exited with code {process.returncode}: {error_output[-500:]}",
                command=command,
                exit_code=process.returncode,
            )

        logger.info("sbt completed successfully in %.1fs", duration)
        return stdout.decode("utf-8", errors="replace")
