"""Build orchestration - choose full, incremental or no build and call the engine."""

from typing import Any, Dict, Optional
import logging

from .core import (
    BuildArtifact,
    BuildMode,
    BuildOptions,
    BuildResult,
    FileChangeSet,
    Insert,
    ProjectManifest,
)
from .detection import has_changes, to_file_changes_json, to_file_snapshot, to_stats
from .engine import CompilationEngine, ProgressReporter

logger = logging.getLogger(__name__)


class BuildOrchestrator:
    """
    Turns a FileChangeSet into at most one engine request.

    The orchestrator never persists anything. Callers write the artifact and
    the next hash store only after ``build`` returns successfully; if it
    raises, the previous state must be left untouched.
    """

    def __init__(self, engine: CompilationEngine, progress: Optional[ProgressReporter] = None):
        self.engine = engine
        self.progress = progress

    async def build(
        self,
        manifest: ProjectManifest,
        change_set: FileChangeSet,
        prior_artifact: Optional[BuildArtifact] = None,
        options: Optional[BuildOptions] = None,
    ) -> BuildResult:
        """
        Build the project from a change set.

        Args:
            manifest: Project manifest, sent to the engine as packageInfo.
            change_set: Result of change detection. Without a prior artifact
                it must have been detected against an empty hash store.
            prior_artifact: Artifact of the last successful build, if any.
            options: Engine build options.

        Returns:
            BuildResult. In UP_TO_DATE mode the prior artifact is returned as is
            and the engine is not called.

        Raises:
            ValueError: If a full build gets a change set with non-insert entries.
            EngineDecodeError, EngineBuildError, EngineError: On engine failure.
        """
        options = options or BuildOptions()
        stats = to_stats(change_set)

        if prior_artifact is None:
            logger.info("There is no existing IR. Building from scratch.")
            artifact = await self.engine.submit_full_build(
                self._full_build_message(manifest, change_set, options),
                self.progress,
            )
            return BuildResult(mode=BuildMode.FULL, artifact=artifact, stats=stats)

        if not has_changes(stats):
            logger.info("There were no file changes and there is an existing IR. No actions needed.")
            return BuildResult(mode=BuildMode.UP_TO_DATE, artifact=prior_artifact, stats=stats)

        logger.info(f"File changes detected ({stats.summary()}). Building incrementally.")
        artifact = await self.engine.submit_incremental_build(
            self._incremental_build_message(manifest, change_set, prior_artifact, options),
            self.progress,
        )
        return BuildResult(mode=BuildMode.INCREMENTAL, artifact=artifact, stats=stats)

    @staticmethod
    def _full_build_message(
        manifest: ProjectManifest,
        change_set: FileChangeSet,
        options: BuildOptions,
    ) -> Dict[str, Any]:
        not_inserts = [p for p, c in change_set.items() if not isinstance(c, Insert)]
        if not_inserts:
            raise ValueError(
                f"A full build needs an insert-only change set, got {len(not_inserts)} "
                f"other entries (e.g. {not_inserts[0]}). Detect against empty hashes."
            )
        return {
            "options": options.to_wire(),
            "packageInfo": manifest.to_package_info(),
            "fileSnapshot": to_file_snapshot(change_set),
        }

    @staticmethod
    def _incremental_build_message(
        manifest: ProjectManifest,
        change_set: FileChangeSet,
        prior_artifact: BuildArtifact,
        options: BuildOptions,
    ) -> Dict[str, Any]:
        return {
            "options": options.to_wire(),
            "packageInfo": manifest.to_package_info(),
            "fileChanges": to_file_changes_json(change_set),
            "distribution": prior_artifact,
        }
