"""Command line entry point: ``repo-signer sign <repo_dir> <target> [promote]``."""

import argparse
import logging
import os
import sys

from .config import LOG_LEVELS, setup_logging
from .exceptions import LockTimeoutError, RepoSignerError
from .signer import RepositorySigner

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_LOCKED = getattr(os, "EX_TEMPFAIL", 75)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="repo-signer",
        description="Sign and index APT/DNF package repositories",
    )
    parser.add_argument("--config-dir", help="Directory with stable-map.txt and dnf-groups/")
    parser.add_argument("--gpg-key", help="Default signing key id")
    parser.add_argument("--lock-timeout", type=float, help="Seconds to wait for the repository lock")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=list(LOG_LEVELS),
        help="DEBUG, INFO, WARNING or ERROR",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    sign = subparsers.add_parser("sign", help="Sign a repository directory")
    sign.add_argument("repo_dir", help="Repository directory")
    sign.add_argument("repo_target", help="Repository target label, e.g. webmin.dev")
    sign.add_argument(
        "promote",
        nargs="?",
        default="",
        help="Any non-empty value promotes a release-candidate repository",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the CLI and return the process exit status."""
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    signer = RepositorySigner(
        config_dir=args.config_dir,
        lock_timeout=args.lock_timeout,
        gpg_key=args.gpg_key,
    )

    try:
        signer.sign(args.repo_dir, args.repo_target, promote=bool(args.promote))
    except LockTimeoutError as e:
        logger.error(f"Signing {args.repo_dir} failed: {e}")
        return EXIT_LOCKED
    except RepoSignerError as e:
        logger.error(f"Signing {args.repo_dir} failed: {e}")
        return EXIT_FAILURE
    except Exception as e:
        logger.exception(f"Signing {args.repo_dir} failed unexpectedly: {e}")
        return EXIT_FAILURE

    logger.info(f"Repository {args.repo_dir} signed successfully")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
