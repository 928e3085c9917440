"""Orchestrates one signing run over a repository directory."""

import logging
import tempfile
from pathlib import Path

from .apt_generator import AptMetadataGenerator
from .artifacts import ArtifactInspector
from .cleanup import purge_old_builds
from .comps import CompsGroupsBuilder
from .config import (
    DEFAULT_GPG_KEY,
    ENV_GPG_KEY,
    ENV_GPG_PASSPHRASE,
    LOCK_FILE,
    default_config_dir,
    default_lock_timeout,
    get_env_var,
)
from .config_manager import ConfigManager
from .exceptions import RepoSignerError
from .latest_links import LatestSymlinkResolver
from .lock import RepositoryLock
from .models import RepoContext
from .ordering import fix_product_ordering
from .promotion import PromotionEngine
from .rpm_indexer import DnfRepositoryIndexer
from .tools import GpgSigner, ToolRunner

logger = logging.getLogger(__name__)


class RepositorySigner:
    """Turns a directory of artifacts into a signed APT and DNF repository.

    One call to :meth:`sign` holds the repository lock for its whole
    duration and runs these phases in order: purge superseded builds,
    APT pool and metadata, RPM signing and repodata, ``-latest`` links,
    product ordering, then promotion when requested.
    """

    def __init__(
        self,
        config_dir: str | Path | None = None,
        lock_timeout: float | None = None,
        gpg_key: str | None = None,
        runner: ToolRunner | None = None,
    ):
        """Initialize the signer.

        Args:
            config_dir: Directory with stable-map.txt, dnf-groups/ and
                repo-targets/. Defaults to REPO_SIGNER_CONFIG_DIR or ~/.config
            lock_timeout: Seconds to wait for a repository lock
            gpg_key: Default signing key. Defaults to GPG_KEY
            runner: Tool runner, replaceable for tests
        """
        self.config_dir = Path(config_dir) if config_dir else default_config_dir()
        self.lock_timeout = lock_timeout if lock_timeout is not None else default_lock_timeout()
        self.gpg_key = gpg_key or get_env_var(ENV_GPG_KEY, DEFAULT_GPG_KEY)
        self.gpg_passphrase = get_env_var(ENV_GPG_PASSPHRASE) or None
        self.runner = runner or ToolRunner()
        self.config_manager = ConfigManager(self.config_dir)

    def sign(
        self,
        repo_dir: str | Path,
        target_name: str,
        promote: bool = False,
        gpg_key: str | None = None,
    ) -> RepoContext:
        """Sign a repository directory, optionally promoting it.

        Args:
            repo_dir: Repository directory, already validated by the dispatcher
            target_name: Repository target label (e.g. "virtualmin.dev")
            promote: Promote to mapped stable repositories afterwards
            gpg_key: Key overriding the default for this run

        Returns:
            The context the run used

        Raises:
            LockTimeoutError: If another run holds the repository lock
            ToolFailureError: If any required tool fails
            RepoSignerError: If the repository directory does not exist
        """
        repo_path = Path(repo_dir).expanduser().resolve()
        if not repo_path.is_dir():
            raise RepoSignerError(f"Repository directory {repo_path} does not exist")

        context = RepoContext(
            repo_dir=repo_path,
            target=self.config_manager.get_target(target_name),
            gpg_key=gpg_key or self.gpg_key,
            config_dir=self.config_dir,
            gpg_passphrase=self.gpg_passphrase,
        )
        logger.info(f"Signing {repo_path} for {target_name} with key {context.gpg_key}")

        with RepositoryLock(repo_path / LOCK_FILE, self.lock_timeout):
            self._run(context, promote)

        logger.info(f"Finished signing {repo_path}")
        return context

    def _run(self, context: RepoContext, promote: bool) -> None:
        inspector = ArtifactInspector(self.runner)
        gpg = GpgSigner(self.runner, context.gpg_key, context.gpg_passphrase)
        resolver = LatestSymlinkResolver(context.repo_dir, inspector)

        # Links from the previous run must not end up in the pool or repodata
        resolver.remove_links()

        purge_old_builds(context, inspector)

        AptMetadataGenerator(context, self.runner, gpg).generate()

        with tempfile.TemporaryDirectory(prefix="repo-signer-") as work_dir:
            groups = CompsGroupsBuilder(context.config_dir, context.target.name, self.runner)
            groups_file = groups.build(Path(work_dir))
            DnfRepositoryIndexer(context, self.runner, gpg).index(groups_file)

        resolver.regenerate()

        products = self.config_manager.get_core_products()
        fix_product_ordering(context, inspector, products)

        if promote:
            engine = PromotionEngine(
                context,
                sign=self._sign_stable,
                inspector=inspector,
                products=products,
                lock_timeout=self.lock_timeout,
            )
            engine.promote()

    def _sign_stable(self, stable_dir: Path, target_name: str, gpg_key: str | None) -> None:
        self.sign(stable_dir, target_name, promote=False, gpg_key=gpg_key)
