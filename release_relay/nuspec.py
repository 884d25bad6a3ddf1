"""Nuspec generation and merging.

Every publish run renders a fresh nuspec from the repository context and
the project's csproj. When the project already has a nuspec on disk, the
committed file wins field by field: anything it defines replaces the
generated value, anything it leaves out is filled in, and elements this
module doesn't model are carried over untouched.

Uses xml.etree.ElementTree. Namespaced nuspec files (the nuspec.xsd
default namespace) are read by local element name and written back with
the same default namespace.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from .errors import ManifestError
from .logging import get_logger, log_debug
from .models import (
    DependencyGroup,
    DotNetProject,
    NuspecDependency,
    NuspecMetadata,
    PackageFile,
    RepositoryContext,
    RepositoryLink,
)
from .versions import derive_version

log = get_logger("nuspec")

XML_DECLARATION = '<?xml version="1.0" encoding="utf-8"?>'
README = "README.md"
RELEASE_NOTES = "No release notes available."

# Element name → NuspecMetadata field, for elements holding plain text
TEXT_ELEMENTS = {
    "id": "id",
    "version": "version",
    "authors": "authors",
    "owners": "owners",
    "readme": "readme",
    "licenseUrl": "license_url",
    "projectUrl": "project_url",
    "description": "description",
    "releaseNotes": "release_notes",
    "copyright": "copyright",
}

ELEMENT_ORDER = [
    "id",
    "version",
    "authors",
    "owners",
    "readme",
    "licenseUrl",
    "repository",
    "projectUrl",
    "requireLicenseAcceptance",
    "description",
    "releaseNotes",
    "copyright",
    "tags",
    "files",
    "dependencies",
]

_TAG_SPLIT = re.compile(r"[\s,;]+")


@dataclass
class NuspecDocument:
    """A parsed nuspec: typed metadata plus what's needed to write it back.

    Attributes:
        metadata: Fields found in <metadata>; unset fields were absent.
        namespace: Default XML namespace of the file, if any.
        metadata_attributes: Attributes on <metadata> (e.g. minClientVersion).
        package_elements: Serialized <package> children other than <metadata>.
    """

    metadata: NuspecMetadata
    namespace: str | None = None
    metadata_attributes: dict[str, str] = field(default_factory=dict)
    package_elements: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


def generate_metadata(
    project: DotNetProject,
    context: RepositoryContext,
    version: str,
    *,
    year: int | None = None,
) -> NuspecMetadata:
    """Build the nuspec metadata implied by the repository and csproj.

    The license URL is only included when the repository declares one.
    The copyright year is the only value that changes between runs.
    """
    year = year or datetime.now(timezone.utc).year
    return NuspecMetadata(
        id=project.name,
        version=version,
        authors=context.owner_display,
        owners=context.owner_display,
        readme=README,
        license_url=context.repo_license_url,
        repository=RepositoryLink(type="git", url=context.repo_git_url),
        project_url=context.repo_html_url,
        require_license_acceptance=False,
        description=context.repo_description or f"The {project.name} NuGet package.",
        release_notes=RELEASE_NOTES,
        copyright=f"Copyright {year}",
        tags=list(context.repo_topics or []),
        files=[PackageFile(src=README, target="\\")],
        dependencies=[
            DependencyGroup(
                dependencies=[
                    NuspecDependency(id=ref.name, version=ref.version)
                    for ref in project.package_references
                ]
            )
        ],
    )


def merge_metadata(
    generated: NuspecMetadata, existing: NuspecMetadata
) -> NuspecMetadata:
    """Overlay an existing manifest onto generated metadata.

    Each field the existing manifest defines replaces the generated value,
    even when it is empty. Fields it doesn't define keep the generated value.
    """
    overrides = existing.model_dump(exclude_unset=True)
    return NuspecMetadata.model_validate({**generated.model_dump(), **overrides})


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def render_nuspec(
    metadata: NuspecMetadata, document: NuspecDocument | None = None
) -> str:
    """Serialize metadata into a complete nuspec document.

    Args:
        metadata: The metadata to write.
        document: The parsed existing file, whose namespace, <metadata>
            attributes and extra <package> children are written back.
    """
    package = ET.Element("package")
    if document and document.namespace:
        package.set("xmlns", document.namespace)

    attrs = dict(document.metadata_attributes) if document else {}
    meta = ET.SubElement(package, "metadata", attrs)
    for name in ELEMENT_ORDER:
        _render_element(meta, name, metadata)
    for raw in metadata.extra_elements:
        meta.append(ET.fromstring(raw))

    if document:
        for raw in document.package_elements:
            package.append(ET.fromstring(raw))

    ET.indent(package)
    return f"{XML_DECLARATION}\n{ET.tostring(package, encoding='unicode')}\n"


def _render_element(meta: ET.Element, name: str, metadata: NuspecMetadata) -> None:
    if name in TEXT_ELEMENTS:
        value = getattr(metadata, TEXT_ELEMENTS[name])
        if value is not None:
            ET.SubElement(meta, name).text = value
    elif name == "repository" and metadata.repository is not None:
        attrs = metadata.repository.model_dump(exclude_none=True)
        ET.SubElement(meta, name, attrs)
    elif name == "requireLicenseAcceptance" and metadata.require_license_acceptance is not None:
        ET.SubElement(meta, name).text = str(metadata.require_license_acceptance).lower()
    elif name == "tags" and metadata.tags is not None:
        ET.SubElement(meta, name).text = " ".join(metadata.tags)
    elif name == "files" and metadata.files is not None:
        files = ET.SubElement(meta, name)
        for f in metadata.files:
            ET.SubElement(files, "file", {"src": f.src, "target": f.target})
    elif name == "dependencies" and metadata.dependencies is not None:
        _render_dependencies(ET.SubElement(meta, name), metadata.dependencies)


def _render_dependencies(parent: ET.Element, groups: list[DependencyGroup]) -> None:
    # A single framework-agnostic group is written flat, without <group>
    if len(groups) == 1 and groups[0].target_framework is None:
        _render_dependency_list(parent, groups[0])
        return
    for group in groups:
        attrs = {"targetFramework": group.target_framework} if group.target_framework else {}
        _render_dependency_list(ET.SubElement(parent, "group", attrs), group)


def _render_dependency_list(parent: ET.Element, group: DependencyGroup) -> None:
    for dep in group.dependencies:
        ET.SubElement(parent, "dependency", {"id": dep.id, "version": dep.version})


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_nuspec(content: bytes | str, path: Path | str = "<nuspec>") -> NuspecDocument:
    """Parse nuspec XML into a NuspecDocument.

    Raises:
        ManifestError: If the XML is malformed or has no <package><metadata>.
    """
    try:
        root = ET.fromstring(content)
    except ET.ParseError as exc:
        raise ManifestError(path, str(exc)) from exc

    namespace = _strip_namespaces(root)
    if root.tag != "package":
        raise ManifestError(path, f"root element is <{root.tag}>, expected <package>")
    meta = root.find("metadata")
    if meta is None:
        raise ManifestError(path, "missing <metadata> element")

    values: dict[str, object] = {}
    extras: list[str] = []
    for child in meta:
        if not _read_element(child, values):
            extras.append(_serialize(child))
    if extras:
        values["extra_elements"] = extras

    return NuspecDocument(
        metadata=NuspecMetadata(**values),
        namespace=namespace,
        metadata_attributes=dict(meta.attrib),
        package_elements=[_serialize(child) for child in root if child is not meta],
    )


def _strip_namespaces(root: ET.Element) -> str | None:
    """Drop the root's default namespace from every tag that uses it.

    Elements in other namespaces keep their qualified tags.
    """
    if not root.tag.startswith("{"):
        return None
    namespace = root.tag[1:].split("}", 1)[0]
    prefix = f"{{{namespace}}}"
    for elem in root.iter():
        if isinstance(elem.tag, str) and elem.tag.startswith(prefix):
            elem.tag = elem.tag[len(prefix):]
    return namespace


def _read_element(child: ET.Element, values: dict[str, object]) -> bool:
    """Store a known metadata child into values; False when it's unknown."""
    name = child.tag
    text = (child.text or "").strip()
    if name in TEXT_ELEMENTS:
        values[TEXT_ELEMENTS[name]] = text
    elif name == "repository":
        values["repository"] = RepositoryLink(
            type=child.get("type", "git"),
            url=child.get("url", ""),
            branch=child.get("branch"),
            commit=child.get("commit"),
        )
    elif name == "requireLicenseAcceptance":
        values["require_license_acceptance"] = text.lower() == "true"
    elif name == "tags":
        values["tags"] = [t for t in _TAG_SPLIT.split(text) if t]
    elif name == "files":
        values["files"] = [
            PackageFile(src=f.get("src", ""), target=f.get("target", ""))
            for f in child.findall("file")
        ]
    elif name == "dependencies":
        values["dependencies"] = _read_dependencies(child)
    else:
        return False
    return True


def _read_dependencies(elem: ET.Element) -> list[DependencyGroup]:
    groups = elem.findall("group")
    if not groups:
        return [DependencyGroup(dependencies=_read_dependency_list(elem))]
    return [
        DependencyGroup(
            target_framework=group.get("targetFramework"),
            dependencies=_read_dependency_list(group),
        )
        for group in groups
    ]


def _read_dependency_list(elem: ET.Element) -> list[NuspecDependency]:
    return [
        NuspecDependency(id=dep.get("id", ""), version=dep.get("version", ""))
        for dep in elem.findall("dependency")
    ]


def _serialize(elem: ET.Element) -> str:
    elem.tail = None
    return ET.tostring(elem, encoding="unicode")


def read_nuspec(path: Path) -> NuspecDocument | None:
    """Parse the nuspec at path, or return None when there is none."""
    if not path.exists():
        return None
    return parse_nuspec(path.read_bytes(), path)


# ---------------------------------------------------------------------------
# Pipeline entry points
# ---------------------------------------------------------------------------


def generate_nuspec_for_project(
    project: DotNetProject,
    context: RepositoryContext,
    *,
    year: int | None = None,
) -> NuspecMetadata:
    """Write the project's nuspec, merging with any committed copy.

    Returns:
        The metadata that was written.

    Raises:
        ManifestError: If the committed nuspec can't be parsed.
        VersionError: If a version must be derived from a malformed release name.
    """
    document = read_nuspec(project.manifest_file_path)
    existing_version = document.metadata.version if document else None
    version = derive_version(existing_version, context.latest_release_name)

    metadata = generate_metadata(project, context, version, year=year)
    if document:
        # An empty <version/> is replaced by the derived version
        metadata = merge_metadata(metadata, document.metadata).model_copy(
            update={"version": version}
        )

    contents = render_nuspec(metadata, document)
    log_debug(log, "generated nuspec", str(project.manifest_file_path), contents)
    project.manifest_file_path.write_text(contents, encoding="utf-8")
    return metadata
