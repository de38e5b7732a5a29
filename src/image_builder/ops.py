"""Run orchestration.

One run: clone the branch into memory, diff the head commit against its
parents, resolve build roots, then take each root through archive, build and
push before starting the next. The first failure ends the run; images already
pushed for earlier roots stay where they are.
"""

import logging
from typing import List, Optional, Tuple

from .archive import SnapshotArchiver
from .config import BuilderConfig
from .core import RootResult, RunReport, Snapshot
from .docker_client import DockerAdapter
from .pipeline import BuildPublishPipeline
from .repository import SnapshotRepository
from .resolver import ChangeSetResolver
from .tags import tags_for


def resolve(
    config: BuilderConfig,
    repository: Optional[SnapshotRepository] = None,
    logger: Optional[logging.Logger] = None,
) -> Tuple[Snapshot, List[str]]:
    """Clone the branch and work out which build roots its head commit touches.

    Raises:
        TransportError: If the clone fails
        DiffError: If the changes or tree cannot be read
    """
    log = logger or logging.getLogger(__name__)
    repository = repository or SnapshotRepository(config, logger=logger)

    snapshot = repository.open()
    changes = repository.changes_against_parents(snapshot)
    roots = ChangeSetResolver(repository, logger=logger).resolve_build_roots(snapshot, changes)
    log.info(
        "Commit %s touches %d build root(s)%s",
        snapshot.commit_id[:7],
        len(roots),
        f": {', '.join(roots)}" if roots else "",
    )
    return snapshot, roots


def run(
    config: BuilderConfig,
    repository: Optional[SnapshotRepository] = None,
    docker: Optional[DockerAdapter] = None,
    logger: Optional[logging.Logger] = None,
) -> RunReport:
    """Build and push an image for every build root touched by the head commit.

    Args:
        config: Run configuration
        repository: Source repository (defaults to one built from ``config``)
        docker: Engine adapter (defaults to one built from ``config``)
        logger: Sink for progress events

    Returns:
        RunReport with one result per build root

    Raises:
        ImageBuilderError: The first failure of any step
    """
    log = logger or logging.getLogger(__name__)
    repository = repository or SnapshotRepository(config, logger=logger)
    snapshot, roots = resolve(config, repository=repository, logger=logger)

    report = RunReport(
        commit_id=snapshot.commit_id,
        ref_name=snapshot.ref_name,
        build_roots=roots,
        dry_run=config.dry_run,
    )

    if config.dry_run:
        for root in roots:
            tags = tags_for(root, snapshot.ref_name, snapshot.commit_id)
            report.results.append(RootResult(build_root=root, tags=tags))
            log.info("Would build %s as %s", root, ", ".join(tags))
        return report

    if not roots:
        return report

    docker = docker or DockerAdapter.from_config(config, logger=logger)
    archiver = SnapshotArchiver(repository, logger=logger)
    auth_config = config.registry_auth_config()

    for root in roots:
        tags = tags_for(root, snapshot.ref_name, snapshot.commit_id)
        pipeline = BuildPublishPipeline(docker, root, tags, logger=logger)
        with archiver.archive(snapshot, root) as archive:
            report.results.append(pipeline.run(archive, auth_config))
    return report
