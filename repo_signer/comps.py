"""Optional DNF package-group (comps) definitions merged from remote files."""

import logging
import shutil
import xml.etree.ElementTree as ET
from pathlib import Path

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import DNF_GROUPS_DIR
from .exceptions import OptionalInputError, ToolFailureError
from .tools import ToolRunner

logger = logging.getLogger(__name__)

COMPS_HEADER = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<!DOCTYPE comps PUBLIC "-//Red Hat, Inc.//DTD Comps info//EN" "comps.dtd">\n'
)


class CompsGroupsBuilder:
    """Downloads, merges and validates comps files for one repository target."""

    def __init__(
        self,
        config_dir: Path,
        target_name: str,
        runner: ToolRunner,
        timeout: int = 30,
        max_retries: int = 3,
    ):
        """Initialize the builder.

        Args:
            config_dir: Base config directory holding ``dnf-groups/``
            target_name: Repository target whose URL list is used
            runner: Tool runner for xmllint
            timeout: Request timeout in seconds
            max_retries: Maximum number of retry attempts
        """
        self.url_list = Path(config_dir) / DNF_GROUPS_DIR / target_name
        self.runner = runner
        self.timeout = timeout
        self.max_retries = max_retries
        self.session = self._create_session()

    def _create_session(self) -> requests.Session:
        """Create a requests session with retry configuration."""
        session = requests.Session()

        retry_strategy = Retry(
            total=self.max_retries,
            backoff_factor=1,  # 1, 2, 4 seconds
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    def read_urls(self) -> list[str]:
        """Read the group URL list.

        Returns:
            URLs in file order; empty if the target has no list

        Raises:
            OptionalInputError: If the list exists but is empty or unreadable
        """
        if not self.url_list.is_file():
            return []
        try:
            lines = self.url_list.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError) as e:
            raise OptionalInputError(f"Cannot read {self.url_list}: {e}") from e

        urls = [line.strip() for line in lines if line.strip()]
        if not urls:
            raise OptionalInputError(f"No URLs found in {self.url_list}")
        return urls

    def fetch(self, url: str) -> str:
        """Download one comps file."""
        logger.info(f"Downloading comps file {url}")
        response = self.session.get(url, timeout=self.timeout)
        response.raise_for_status()
        return response.text

    def merge(self, documents: list[str]) -> str:
        """Collect every ``<group>`` element into one comps document.

        Raises:
            ET.ParseError: If a document is not well-formed XML
        """
        root = ET.Element("comps")
        for document in documents:
            parsed = ET.fromstring(document.encode())
            for group in parsed.iter("group"):
                root.append(group)
        ET.indent(root)
        return COMPS_HEADER + ET.tostring(root, encoding="unicode") + "\n"

    def validate(self, comps_file: Path) -> None:
        """Validate the merged file with xmllint.

        Raises:
            OptionalInputError: If xmllint is missing or rejects the file
        """
        if shutil.which("xmllint") is None:
            raise OptionalInputError("xmllint not found, validation required")
        try:
            self.runner.run(["xmllint", "--noout", str(comps_file)])
        except ToolFailureError as e:
            raise OptionalInputError(f"XML validation failed: {e}") from e

    def build(self, work_dir: Path) -> Path | None:
        """Produce a validated merged groups file, if the target has one.

        Every problem is downgraded to a warning: group definitions are an
        optional input and must never stop the repository from being indexed.

        Args:
            work_dir: Scratch directory for the merged file

        Returns:
            Path to the merged comps file, or None when groups are skipped
        """
        try:
            urls = self.read_urls()
            if not urls:
                return None

            documents = [self.fetch(url) for url in urls]
            comps_file = Path(work_dir) / "merged-comps.xml"
            comps_file.write_text(self.merge(documents))
            self.validate(comps_file)
        except (OptionalInputError, requests.RequestException, ET.ParseError, OSError) as e:
            logger.warning(f"Skipping package groups for {self.url_list.name}: {e}")
            return None

        logger.info(f"Merged {len(urls)} comps files into {comps_file.name}")
        return comps_file
