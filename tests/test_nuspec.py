"""Tests for release_relay.nuspec."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path

import pytest

from release_relay.errors import ManifestError, VersionError
from release_relay.models import DotNetProject, NuspecMetadata, RepositoryContext
from release_relay.nuspec import (
    generate_metadata,
    generate_nuspec_for_project,
    merge_metadata,
    parse_nuspec,
    render_nuspec,
)


EXISTING_NUSPEC = """\
<?xml version="1.0" encoding="utf-8"?>
<package xmlns="http://schemas.microsoft.com/packaging/2013/05/nuspec.xsd">
  <metadata minClientVersion="5.0">
    <id>Foo</id>
    <version>5.0.0</version>
    <description>Custom text</description>
    <icon>icon.png</icon>
    <dependencies>
      <group targetFramework="net8.0">
        <dependency id="Serilog" version="3.1.1" />
      </group>
    </dependencies>
  </metadata>
  <files>
    <file src="icon.png" target="" />
  </files>
</package>
"""


class TestGenerateMetadata:
    def test_fields_from_context(
        self, dotnet_project: DotNetProject, repo_context: RepositoryContext
    ) -> None:
        meta = generate_metadata(dotnet_project, repo_context, "1.0.0", year=2024)

        assert meta.id == "Foo"
        assert meta.version == "1.0.0"
        assert meta.authors == "Octo Cat (octo)"
        assert meta.owners == "Octo Cat (octo)"
        assert meta.license_url == "https://api.github.com/licenses/mit"
        assert meta.repository.url == "git://github.com/octo/widgets.git"
        assert meta.project_url == "https://github.com/octo/widgets"
        assert meta.require_license_acceptance is False
        assert meta.copyright == "Copyright 2024"
        assert meta.tags == ["a", "b"]
        assert meta.dependencies[0].dependencies[0].id == "Newtonsoft.Json"

    def test_description_falls_back_to_template(
        self, dotnet_project: DotNetProject, repo_context: RepositoryContext
    ) -> None:
        meta = generate_metadata(dotnet_project, repo_context, "1.0.0")

        assert meta.description == "The Foo NuGet package."

    def test_optional_repository_fields(
        self, dotnet_project: DotNetProject, repo_context: RepositoryContext
    ) -> None:
        """No license means no licenseUrl; no topics means empty tags."""
        context = repo_context.model_copy(
            update={"repo_license_url": None, "repo_topics": None, "owner_name": None}
        )

        meta = generate_metadata(dotnet_project, context, "1.0.0")
        xml = render_nuspec(meta)

        assert meta.license_url is None
        assert "licenseUrl" not in xml
        assert meta.tags == []
        assert meta.authors == "octo"

    def test_deterministic_for_fixed_year(
        self, dotnet_project: DotNetProject, repo_context: RepositoryContext
    ) -> None:
        first = render_nuspec(generate_metadata(dotnet_project, repo_context, "1.0.0", year=2024))
        second = render_nuspec(generate_metadata(dotnet_project, repo_context, "1.0.0", year=2024))

        assert first == second


class TestMergeMetadata:
    def test_existing_field_wins(self) -> None:
        generated = NuspecMetadata(description="The Foo package.", tags=["a", "b"])
        existing = NuspecMetadata(description="Custom text")

        merged = merge_metadata(generated, existing)

        assert merged.description == "Custom text"

    def test_absent_field_falls_back_to_generated(self) -> None:
        generated = NuspecMetadata(description="The Foo package.", tags=["a", "b"])
        existing = NuspecMetadata(description="Custom text")

        merged = merge_metadata(generated, existing)

        assert merged.tags == ["a", "b"]

    def test_empty_existing_field_still_wins(self) -> None:
        generated = NuspecMetadata(tags=["a", "b"])
        existing = NuspecMetadata(tags=[])

        assert merge_metadata(generated, existing).tags == []

    def test_extra_elements_carry_over(self) -> None:
        generated = NuspecMetadata(id="Foo")
        existing = NuspecMetadata(extra_elements=["<icon>icon.png</icon>"])

        merged = merge_metadata(generated, existing)

        assert merged.id == "Foo"
        assert merged.extra_elements == ["<icon>icon.png</icon>"]


class TestParseNuspec:
    def test_reads_known_fields(self) -> None:
        doc = parse_nuspec(EXISTING_NUSPEC)

        assert doc.metadata.version == "5.0.0"
        assert doc.metadata.description == "Custom text"
        assert doc.metadata.dependencies[0].target_framework == "net8.0"
        assert doc.metadata.model_fields_set == {
            "id",
            "version",
            "description",
            "dependencies",
            "extra_elements",
        }

    def test_namespace_and_unknown_elements(self) -> None:
        doc = parse_nuspec(EXISTING_NUSPEC)

        assert doc.namespace == "http://schemas.microsoft.com/packaging/2013/05/nuspec.xsd"
        assert doc.metadata_attributes == {"minClientVersion": "5.0"}
        assert doc.metadata.extra_elements == ["<icon>icon.png</icon>"]
        assert len(doc.package_elements) == 1
        assert doc.package_elements[0].startswith("<files>")

    def test_foreign_namespace_is_kept(self) -> None:
        """Only the default nuspec namespace is dropped from tags."""
        doc = parse_nuspec(
            '<package xmlns="http://schemas.microsoft.com/packaging/2013/05/nuspec.xsd">'
            '<metadata><id>Foo</id><sig:signature xmlns:sig="urn:example:sig">abc'
            "</sig:signature></metadata></package>"
        )

        root = ET.fromstring(render_nuspec(doc.metadata, doc))

        ns = "{http://schemas.microsoft.com/packaging/2013/05/nuspec.xsd}"
        meta = root.find(f"{ns}metadata")
        assert meta.find(f"{ns}id").text == "Foo"
        assert meta.find("{urn:example:sig}signature").text == "abc"

    def test_tags_split_on_spaces_and_commas(self) -> None:
        doc = parse_nuspec("<package><metadata><tags>a, b c</tags></metadata></package>")

        assert doc.metadata.tags == ["a", "b", "c"]

    def test_malformed_xml(self) -> None:
        with pytest.raises(ManifestError, match="Foo.nuspec"):
            parse_nuspec("<package><metadata>", "Foo.nuspec")

    def test_wrong_root(self) -> None:
        with pytest.raises(ManifestError, match="expected <package>"):
            parse_nuspec("<configuration />")

    def test_missing_metadata(self) -> None:
        with pytest.raises(ManifestError, match="metadata"):
            parse_nuspec("<package />")


class TestRoundTrip:
    def test_generated_metadata_survives_render_and_parse(
        self, dotnet_project: DotNetProject, repo_context: RepositoryContext
    ) -> None:
        meta = generate_metadata(dotnet_project, repo_context, "2.2.3", year=2024)

        assert parse_nuspec(render_nuspec(meta)).metadata == meta

    def test_existing_document_survives_render_and_parse(self) -> None:
        doc = parse_nuspec(EXISTING_NUSPEC)

        again = parse_nuspec(render_nuspec(doc.metadata, doc))

        assert again.metadata == doc.metadata
        assert again.namespace == doc.namespace
        assert again.package_elements == doc.package_elements

    def test_output_is_well_formed(
        self, dotnet_project: DotNetProject, repo_context: RepositoryContext
    ) -> None:
        xml = render_nuspec(generate_metadata(dotnet_project, repo_context, "1.0.0"))

        assert xml.startswith('<?xml version="1.0" encoding="utf-8"?>')
        root = ET.fromstring(xml)
        assert root.find("metadata/requireLicenseAcceptance").text == "false"
        assert root.find("metadata/files/file").get("target") == "\\"


class TestGenerateNuspecForProject:
    def test_fresh_project_gets_derived_version(
        self, dotnet_project: DotNetProject, repo_context: RepositoryContext
    ) -> None:
        context = repo_context.model_copy(update={"latest_release_name": "1.2.3"})

        meta = generate_nuspec_for_project(dotnet_project, context)

        assert meta.version == "2.2.3"
        written = parse_nuspec(dotnet_project.manifest_file_path.read_bytes())
        assert written.metadata.version == "2.2.3"

    def test_no_release_gives_one_zero_zero(
        self, dotnet_project: DotNetProject, repo_context: RepositoryContext
    ) -> None:
        meta = generate_nuspec_for_project(dotnet_project, repo_context)

        assert meta.version == "1.0.0"

    def test_existing_manifest_is_merged(
        self, dotnet_project: DotNetProject, repo_context: RepositoryContext
    ) -> None:
        dotnet_project.manifest_file_path.write_text(EXISTING_NUSPEC)
        context = repo_context.model_copy(update={"latest_release_name": "7.0.0"})

        meta = generate_nuspec_for_project(dotnet_project, context, year=2024)

        assert meta.version == "5.0.0"
        assert meta.description == "Custom text"
        assert meta.tags == ["a", "b"]
        assert meta.dependencies[0].target_framework == "net8.0"
        text = dotnet_project.manifest_file_path.read_text()
        assert "<icon>icon.png</icon>" in text
        assert 'minClientVersion="5.0"' in text
        assert 'xmlns="http://schemas.microsoft.com/packaging/2013/05/nuspec.xsd"' in text

    def test_rerun_is_idempotent(
        self, dotnet_project: DotNetProject, repo_context: RepositoryContext
    ) -> None:
        dotnet_project.manifest_file_path.write_text(EXISTING_NUSPEC)

        generate_nuspec_for_project(dotnet_project, repo_context, year=2024)
        first = dotnet_project.manifest_file_path.read_text()
        generate_nuspec_for_project(dotnet_project, repo_context, year=2024)

        assert dotnet_project.manifest_file_path.read_text() == first

    def test_malformed_existing_manifest(
        self, dotnet_project: DotNetProject, repo_context: RepositoryContext
    ) -> None:
        dotnet_project.manifest_file_path.write_text("<package><metadata>")

        with pytest.raises(ManifestError):
            generate_nuspec_for_project(dotnet_project, repo_context)

    def test_malformed_release_name(
        self, dotnet_project: DotNetProject, repo_context: RepositoryContext
    ) -> None:
        context = repo_context.model_copy(update={"latest_release_name": "v1.0.0"})

        with pytest.raises(VersionError):
            generate_nuspec_for_project(dotnet_project, context)
        assert not Path(dotnet_project.manifest_file_path).exists()

    def test_empty_existing_version_is_derived(
        self, dotnet_project: DotNetProject, repo_context: RepositoryContext
    ) -> None:
        """An empty <version/> must not end up in the written file."""
        dotnet_project.manifest_file_path.write_text(
            "<package><metadata><id>Foo</id><version></version></metadata></package>"
        )

        meta = generate_nuspec_for_project(dotnet_project, repo_context)

        assert meta.version == "1.0.0"
        written = parse_nuspec(dotnet_project.manifest_file_path.read_bytes())
        assert written.metadata.version == "1.0.0"
