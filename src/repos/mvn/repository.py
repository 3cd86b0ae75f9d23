"""Remote Maven repositories and version range resolution."""
from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import List, Optional

from packaging import version

from common.http_client import robust_get_text
from constants import Constants

logger = logging.getLogger(__name__)


def is_version_range(version: Optional[str]) -> bool:
    """True for Maven range syntax such as ``[1.0,2.0)`` or ``(,1.5]``."""
    return bool(version) and version.strip()[:1] in ("[", "(")


class MvnRepository:
    """A remote repository in the standard Maven 2 layout."""

    def __init__(self, base_url: str):
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MvnRepository):
            return NotImplemented
        return self.base_url == other.base_url

    def __hash__(self) -> int:
        return hash(self.base_url)

    def __repr__(self) -> str:
        return self.base_url

    def _artifact_dir(self, group_id: str, artifact_id: str) -> str:
        return f"{self.base_url}{group_id.replace('.', '/')}/{artifact_id}/"

    def get_file_url(self, group_id: str, artifact_id: Optional[str], module_path: Optional[str],
                     version_str: str, classifier: Optional[str], suffix: str, ext: str) -> str:
        """URL of ``artifact-version[-classifier][suffix].ext``."""
        artifact = artifact_id if artifact_id is not None else module_path
        classifier_ext = f"-{classifier}" if classifier else ""
        file_name = f"{artifact}-{version_str}{classifier_ext}{suffix}.{ext}"
        return f"{self._artifact_dir(group_id, artifact)}{version_str}/{file_name}"

    def get_metadata_url(self, group_id: str, artifact_id: str) -> str:
        return f"{self._artifact_dir(group_id, artifact_id)}{Constants.MAVEN_METADATA_FILE}"

    def fetch_versions(self, group_id: str, artifact_id: str) -> List[str]:
        """Versions listed in the artifact's maven-metadata.xml, empty on any failure."""
        status_code, text = robust_get_text(self.get_metadata_url(group_id, artifact_id))
        if status_code != 200 or not text:
            return []
        try:
            root = ET.fromstring(text)
        except ET.ParseError as exc:
            logger.warning("Invalid maven metadata for %s/%s in %s: %s", group_id, artifact_id, self, exc)
            return []
        versions = []
        versioning = root.find("versioning")
        if versioning is not None:
            versions_elem = versioning.find("versions")
            if versions_elem is not None:
                for version_elem in versions_elem.findall("version"):
                    if version_elem.text:
                        versions.append(version_elem.text.strip())
        return versions


def pick_version(range_spec: str, candidates: List[str]) -> Optional[str]:
    """Highest candidate inside ``range_spec``; releases win over SNAPSHOTs."""
    matching = filter_by_range(range_spec, candidates)
    if not matching:
        return None
    releases = [v for v in matching if not v.endswith("-SNAPSHOT")]
    pool = releases or matching
    parsed = []
    for v in pool:
        try:
            parsed.append((version.Version(v), v))
        except version.InvalidVersion:
            continue
    if not parsed:
        return None
    parsed.sort(reverse=True)
    return parsed[0][1]


def filter_by_range(range_spec: str, candidates: List[str]) -> List[str]:
    """Filter candidates by a Maven version range such as ``[1.0,2.0)``."""
    range_spec = range_spec.strip()
    if not any(char in range_spec for char in "[()]"):
        return [range_spec] if range_spec in candidates else []

    ranges = _split_ranges(range_spec)
    if len(ranges) == 1:
        return _parse_bracket_range(ranges[0], candidates)
    # Union of the matches of each range, in candidate order
    matched = set()
    for r in ranges:
        matched.update(_parse_bracket_range(r, candidates))
    return [v for v in candidates if v in matched]


def _split_ranges(range_spec: str) -> List[str]:
    """``[1.0,2.0),[3.0,4.0]`` -> ``['[1.0,2.0)', '[3.0,4.0]']``."""
    ranges = []
    current = ""
    depth = 0
    for char in range_spec:
        if char in "[(":
            if depth == 0:
                current = ""
            depth += 1
            current += char
        elif char in "])":
            depth -= 1
            current += char
            if depth == 0:
                ranges.append(current)
                current = ""
        elif depth > 0:
            current += char
    return ranges


def _parse_bracket_range(range_spec: str, candidates: List[str]) -> List[str]:
    """Parse one bracket range such as ``[1.0,2.0)``, ``(1.0,]`` or ``[1.2]``."""
    inner = range_spec[1:-1] if len(range_spec) >= 2 else ""
    parts = inner.split(",")

    # [1.2] is an exact version
    if len(parts) == 1:
        base = parts[0].strip()
        return [v for v in candidates if v == base]

    lower_str, upper_str = parts[0].strip(), parts[1].strip()
    lower_inclusive = range_spec.startswith("[")
    upper_inclusive = range_spec.endswith("]")
    try:
        lower_ver = version.Version(lower_str) if lower_str else None
        upper_ver = version.Version(upper_str) if upper_str else None
    except version.InvalidVersion:
        logger.warning("Unable to parse version range: %s", range_spec)
        return []

    matching = []
    for v in candidates:
        try:
            ver = version.Version(v)
        except version.InvalidVersion:
            continue
        if lower_ver is not None:
            if lower_inclusive and ver < lower_ver:
                continue
            if not lower_inclusive and ver <= lower_ver:
                continue
        if upper_ver is not None:
            if upper_inclusive and ver > upper_ver:
                continue
            if not upper_inclusive and ver >= upper_ver:
                continue
        matching.append(v)
    return matching
