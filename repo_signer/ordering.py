"""Keeps core product packages listed just above their modules.

Directory listings sorted by time should show e.g. ``webmin_2.300_all.deb``
right above the ``webmin-*`` module packages of the same version. Modules
that are separately released products are left out of the comparison.
"""

import logging
import os
from collections import defaultdict

from .artifacts import ArtifactInspector, collect_artifacts
from .models import FORMAT_DEB, FORMAT_RPM, Artifact, CoreProduct, RepoContext

logger = logging.getLogger(__name__)


def plan_product_mtimes(artifacts: list[Artifact], product: CoreProduct) -> dict[str, float]:
    """Compute new mtimes for a product's own packages.

    Args:
        artifacts: Artifacts of one extension class
        product: The core product

    Returns:
        Mapping of product filename to its new mtime
    """
    newest_module: dict[str, float] = defaultdict(float)
    for artifact in artifacts:
        if product.is_module(artifact.name):
            newest_module[artifact.version] = max(newest_module[artifact.version], artifact.mtime)

    plan = {}
    for artifact in artifacts:
        if artifact.name != product.name or artifact.version not in newest_module:
            continue
        plan[artifact.filename] = newest_module[artifact.version] + 1
    return plan


def fix_product_ordering(
    context: RepoContext, inspector: ArtifactInspector, products: list[CoreProduct]
) -> dict[str, float]:
    """Bump product package mtimes to one second after their newest module.

    Returns:
        Mapping of touched filename to the mtime it now carries
    """
    touched: dict[str, float] = {}
    for fmt in (FORMAT_DEB, FORMAT_RPM):
        artifacts = collect_artifacts(context.repo_dir, fmt, inspector, include_symlinks=False)
        for product in products:
            for filename, mtime in plan_product_mtimes(artifacts, product).items():
                path = context.repo_dir / filename
                os.utime(path, (path.stat().st_atime, mtime))
                logger.debug(f"Moved {filename} above its modules")
                touched[filename] = mtime

    if touched:
        logger.info(f"Adjusted modification time of {len(touched)} product packages")
    return touched
