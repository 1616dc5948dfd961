"""Tests for the package content service."""

import asyncio
import io
from typing import Dict, List, Optional, Tuple

import pytest
import semantic_version

from content.models import PackageRecord
from content.service import PackageContentService
from content.versioning import to_normalized_string
from licensing.checker import LicenseChecker
from licensing.exceptions import RestrictedLicenseError
from licensing.options import LicenseFilterOptions

V1 = semantic_version.Version("1.0.0")
AGPL_URL = "https://www.gnu.org/licenses/agpl-3.0.html"


def _nuspec(license_xml: str) -> bytes:
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        '<package xmlns="http://schemas.microsoft.com/packaging/2013/05/nuspec.xsd">'
        f"<metadata><id>Sample</id><version>1.0.0</version>{license_xml}</metadata>"
        "</package>"
    ).encode("utf-8")


def _key(package_id: str, version: semantic_version.Version) -> Tuple[str, str]:
    return package_id.lower(), to_normalized_string(version).lower()


class _FakeFeed:
    """In-memory mirror, index and storage sharing one call log."""

    def __init__(self):
        self.calls: List[Tuple[str, str]] = []
        self.records: Dict[Tuple[str, str], PackageRecord] = {}
        self.blobs: Dict[Tuple[str, str, str], bytes] = {}
        self.upstream_versions: Dict[str, List[semantic_version.Version]] = {}
        self.upstream_packages: Dict[Tuple[str, str], Tuple[PackageRecord, Dict[str, bytes]]] = {}
        self.mirror_gate: Optional[asyncio.Event] = None
        self.package_stream_error: Optional[Exception] = None

    def add(self, record: PackageRecord, **blobs: bytes) -> None:
        key = _key(record.id, record.version)
        self.records[key] = record
        for kind, data in blobs.items():
            self.blobs[key + (kind,)] = data

    def add_upstream(self, record: PackageRecord, **blobs: bytes) -> None:
        self.upstream_packages[_key(record.id, record.version)] = (record, blobs)

    # Mirror
    async def find_package_versions(self, package_id):
        self.calls.append(("find_package_versions", package_id))
        return list(self.upstream_versions.get(package_id.lower(), []))

    async def mirror(self, package_id, version):
        self.calls.append(("mirror", package_id))
        if self.mirror_gate is not None:
            await self.mirror_gate.wait()
        key = _key(package_id, version)
        if key not in self.records and key in self.upstream_packages:
            record, blobs = self.upstream_packages[key]
            self.add(record, **blobs)

    # Index
    async def find_or_none(self, package_id, version, include_unlisted=False):
        self.calls.append(("find_or_none", package_id))
        record = self.records.get(_key(package_id, version))
        if record is not None and not record.listed and not include_unlisted:
            return None
        return record

    async def exists(self, package_id, version):
        self.calls.append(("exists", package_id))
        return _key(package_id, version) in self.records

    async def add_download(self, package_id, version):
        self.calls.append(("add_download", package_id))
        record = self.records.get(_key(package_id, version))
        if record is None:
            return False
        record.downloads += 1
        return True

    # Storage
    def _open(self, package_id, version, kind):
        data = self.blobs.get(_key(package_id, version) + (kind,))
        return io.BytesIO(data) if data is not None else None

    async def get_package_stream(self, package_id, version):
        self.calls.append(("get_package_stream", package_id))
        if self.package_stream_error is not None:
            raise self.package_stream_error
        return self._open(package_id, version, "nupkg")

    async def get_nuspec_stream(self, package_id, version):
        self.calls.append(("get_nuspec_stream", package_id))
        return self._open(package_id, version, "nuspec")

    async def get_readme_stream(self, package_id, version):
        self.calls.append(("get_readme_stream", package_id))
        return self._open(package_id, version, "readme")

    async def get_icon_stream(self, package_id, version):
        self.calls.append(("get_icon_stream", package_id))
        return self._open(package_id, version, "icon")

    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]


def _service(feed: _FakeFeed, *patterns: str, enabled: bool = True) -> PackageContentService:
    checker = LicenseChecker(
        LicenseFilterOptions(enabled=enabled, blocked_license_patterns=tuple(patterns))
    )
    return PackageContentService(feed, feed, feed, checker)


class TestConstruction:
    """Tests for constructor validation."""

    @pytest.mark.parametrize("missing", ["mirror", "packages", "storage", "license_checker"])
    def test_missing_dependency_raises(self, missing):
        feed = _FakeFeed()
        deps = {
            "mirror": feed,
            "packages": feed,
            "storage": feed,
            "license_checker": LicenseChecker(),
        }
        deps[missing] = None
        with pytest.raises(ValueError, match=missing):
            PackageContentService(**deps)


class TestGetPackageVersions:
    """Tests for version listing."""

    def test_versions_are_normalized_and_lower_cased(self):
        feed = _FakeFeed()
        feed.upstream_versions["sample"] = [
            semantic_version.Version("1.0.0"),
            semantic_version.Version("2.0.0-BETA"),
        ]
        service = _service(feed)

        response = asyncio.run(service.get_package_versions_or_none("Sample"))

        assert response is not None
        assert response.versions == ["1.0.0", "2.0.0-beta"]
        assert response.to_dict() == {"versions": ["1.0.0", "2.0.0-beta"]}

    def test_upstream_order_preserved_and_build_metadata_dropped(self):
        feed = _FakeFeed()
        feed.upstream_versions["sample"] = [
            semantic_version.Version("3.1.0-RC.1+sha.abc"),
            semantic_version.Version("1.2.3"),
        ]
        service = _service(feed)

        response = asyncio.run(service.get_package_versions_or_none("sample"))

        assert response.versions == ["3.1.0-rc.1", "1.2.3"]

    def test_unknown_package_returns_none(self):
        feed = _FakeFeed()
        service = _service(feed)
        assert asyncio.run(service.get_package_versions_or_none("nope")) is None


class TestGetPackageContentStream:
    """Tests for the license-gated content stream."""

    def test_restricted_expression_raises_before_download(self):
        """Test a blocked package raises and its download count is unchanged."""
        feed = _FakeFeed()
        record = PackageRecord(id="Sample", version=V1, license_expression="AGPL-3.0-or-later")
        feed.add(
            record,
            nupkg=b"PK-content",
            nuspec=_nuspec('<license type="expression">AGPL-3.0-or-later</license>'),
        )
        service = _service(feed, "AGPL")

        with pytest.raises(RestrictedLicenseError) as exc_info:
            asyncio.run(service.get_package_content_stream_or_none("Sample", V1))

        error = exc_info.value
        assert "AGPL-3.0-or-later" in error.license_info
        assert error.package_id == "Sample"
        assert error.package_version == V1
        assert record.downloads == 0
        assert "add_download" not in feed.call_names()
        assert "get_package_stream" not in feed.call_names()

    def test_allowed_expression_returns_content_and_counts_download(self):
        feed = _FakeFeed()
        record = PackageRecord(id="Sample", version=V1, license_expression="MIT")
        feed.add(
            record,
            nupkg=b"PK-content",
            nuspec=_nuspec('<license type="expression">MIT</license>'),
        )
        service = _service(feed, "AGPL")

        stream = asyncio.run(service.get_package_content_stream_or_none("Sample", V1))

        assert stream is not None
        assert stream.read() == b"PK-content"
        assert record.downloads == 1

    def test_steps_run_in_order(self):
        feed = _FakeFeed()
        feed.add(
            PackageRecord(id="Sample", version=V1),
            nupkg=b"PK",
            nuspec=_nuspec('<license type="expression">MIT</license>'),
        )
        service = _service(feed, "AGPL")

        asyncio.run(service.get_package_content_stream_or_none("Sample", V1))

        assert feed.call_names() == [
            "mirror",
            "find_or_none",
            "get_nuspec_stream",
            "add_download",
            "get_package_stream",
        ]

    def test_restricted_legacy_url_in_nuspec(self):
        feed = _FakeFeed()
        feed.add(
            PackageRecord(id="Sample", version=V1),
            nupkg=b"PK",
            nuspec=_nuspec(f"<licenseUrl>{AGPL_URL}</licenseUrl>"),
        )
        service = _service(feed, "agpl")

        with pytest.raises(RestrictedLicenseError) as exc_info:
            asyncio.run(service.get_package_content_stream_or_none("Sample", V1))

        assert exc_info.value.license_info == f"License URL: {AGPL_URL}"

    def test_record_license_used_without_nuspec(self):
        """Test the index record is classified when storage has no nuspec."""
        feed = _FakeFeed()
        record = PackageRecord(id="Sample", version=V1, license_url=AGPL_URL)
        feed.add(record, nupkg=b"PK")
        service = _service(feed, "agpl")

        with pytest.raises(RestrictedLicenseError) as exc_info:
            asyncio.run(service.get_package_content_stream_or_none("Sample", V1))

        assert exc_info.value.license_info == f"License URL: {AGPL_URL}"
        assert record.downloads == 0

    def test_record_expression_ignored_without_nuspec(self):
        """Test only the record's license URL is classified when there is no nuspec."""
        feed = _FakeFeed()
        record = PackageRecord(id="Sample", version=V1, license_expression="AGPL-3.0-only")
        feed.add(record, nupkg=b"PK")
        service = _service(feed, "AGPL")

        stream = asyncio.run(service.get_package_content_stream_or_none("Sample", V1))

        assert stream.read() == b"PK"
        assert record.downloads == 1

    def test_corrupt_nuspec_fails_open(self):
        feed = _FakeFeed()
        record = PackageRecord(id="Sample", version=V1, license_expression="AGPL-3.0-only")
        feed.add(record, nupkg=b"PK", nuspec=b"<package><metadata>")
        service = _service(feed, "AGPL")

        stream = asyncio.run(service.get_package_content_stream_or_none("Sample", V1))

        assert stream.read() == b"PK"
        assert record.downloads == 1

    def test_disabled_filter_serves_restricted_license(self):
        feed = _FakeFeed()
        record = PackageRecord(id="Sample", version=V1)
        feed.add(
            record,
            nupkg=b"PK",
            nuspec=_nuspec('<license type="expression">AGPL-3.0-only</license>'),
        )
        service = _service(feed, "AGPL", enabled=False)

        stream = asyncio.run(service.get_package_content_stream_or_none("Sample", V1))

        assert stream.read() == b"PK"
        assert record.downloads == 1

    def test_unlisted_package_is_still_checked(self):
        feed = _FakeFeed()
        feed.add(
            PackageRecord(id="Sample", version=V1, listed=False),
            nupkg=b"PK",
            nuspec=_nuspec('<license type="expression">AGPL-3.0-only</license>'),
        )
        service = _service(feed, "AGPL")

        with pytest.raises(RestrictedLicenseError):
            asyncio.run(service.get_package_content_stream_or_none("Sample", V1))

    def test_missing_package_returns_none(self):
        """Test failed download accounting short-circuits before storage."""
        feed = _FakeFeed()
        service = _service(feed, "AGPL")

        result = asyncio.run(service.get_package_content_stream_or_none("Missing", V1))

        assert result is None
        assert "get_package_stream" not in feed.call_names()

    def test_mirrored_package_becomes_visible(self):
        """Test a package only known upstream is served after mirroring."""
        feed = _FakeFeed()
        record = PackageRecord(id="Sample", version=V1)
        feed.add_upstream(
            record,
            nupkg=b"PK-upstream",
            nuspec=_nuspec('<license type="expression">MIT</license>'),
        )
        service = _service(feed, "AGPL")

        stream = asyncio.run(service.get_package_content_stream_or_none("Sample", V1))

        assert stream.read() == b"PK-upstream"
        assert record.downloads == 1

    def test_mirrored_restricted_package_is_not_served(self):
        feed = _FakeFeed()
        record = PackageRecord(id="Sample", version=V1)
        feed.add_upstream(
            record,
            nupkg=b"PK-upstream",
            nuspec=_nuspec('<license type="expression">AGPL-3.0-only</license>'),
        )
        service = _service(feed, "AGPL")

        with pytest.raises(RestrictedLicenseError):
            asyncio.run(service.get_package_content_stream_or_none("Sample", V1))
        assert record.downloads == 0

    def test_storage_faults_propagate(self):
        feed = _FakeFeed()
        feed.add(PackageRecord(id="Sample", version=V1), nupkg=b"PK")
        feed.package_stream_error = OSError("storage unavailable")
        service = _service(feed, "AGPL")

        with pytest.raises(OSError, match="storage unavailable"):
            asyncio.run(service.get_package_content_stream_or_none("Sample", V1))

    def test_cancellation_during_mirror_skips_accounting(self):
        feed = _FakeFeed()
        record = PackageRecord(id="Sample", version=V1)
        feed.add(record, nupkg=b"PK")
        service = _service(feed, "AGPL")

        async def _run():
            feed.mirror_gate = asyncio.Event()
            task = asyncio.ensure_future(
                service.get_package_content_stream_or_none("Sample", V1)
            )
            await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(_run())

        assert record.downloads == 0
        assert "add_download" not in feed.call_names()


class TestUngatedStreams:
    """Manifest, readme and icon are served regardless of license."""

    def _restricted_feed(self) -> _FakeFeed:
        feed = _FakeFeed()
        feed.add(
            PackageRecord(
                id="Sample",
                version=V1,
                license_expression="AGPL-3.0-only",
                has_readme=True,
                has_embedded_icon=True,
            ),
            nupkg=b"PK",
            nuspec=_nuspec('<license type="expression">AGPL-3.0-only</license>'),
            readme=b"# Sample",
            icon=b"\x89PNG",
        )
        return feed

    def test_manifest_of_restricted_package(self):
        feed = self._restricted_feed()
        service = _service(feed, "AGPL")

        stream = asyncio.run(service.get_package_manifest_stream_or_none("Sample", V1))

        assert b"AGPL-3.0-only" in stream.read()
        assert feed.call_names()[:2] == ["mirror", "exists"]

    def test_readme_of_restricted_package(self):
        service = _service(self._restricted_feed(), "AGPL")
        stream = asyncio.run(service.get_package_readme_stream_or_none("Sample", V1))
        assert stream.read() == b"# Sample"

    def test_icon_of_restricted_package(self):
        service = _service(self._restricted_feed(), "AGPL")
        stream = asyncio.run(service.get_package_icon_stream_or_none("Sample", V1))
        assert stream.read() == b"\x89PNG"

    def test_ungated_streams_do_not_count_downloads(self):
        feed = self._restricted_feed()
        service = _service(feed, "AGPL")

        asyncio.run(service.get_package_manifest_stream_or_none("Sample", V1))
        asyncio.run(service.get_package_readme_stream_or_none("Sample", V1))
        asyncio.run(service.get_package_icon_stream_or_none("Sample", V1))

        assert "add_download" not in feed.call_names()

    def test_manifest_missing_package(self):
        feed = _FakeFeed()
        service = _service(feed)
        assert asyncio.run(service.get_package_manifest_stream_or_none("Missing", V1)) is None
        assert "get_nuspec_stream" not in feed.call_names()

    def test_readme_and_icon_flags_respected(self):
        feed = _FakeFeed()
        feed.add(PackageRecord(id="Sample", version=V1), readme=b"# r", icon=b"i")
        service = _service(feed)

        assert asyncio.run(service.get_package_readme_stream_or_none("Sample", V1)) is None
        assert asyncio.run(service.get_package_icon_stream_or_none("Sample", V1)) is None
        assert "get_readme_stream" not in feed.call_names()
        assert "get_icon_stream" not in feed.call_names()

    def test_readme_and_icon_of_unknown_package(self):
        service = _service(_FakeFeed())
        assert asyncio.run(service.get_package_readme_stream_or_none("Missing", V1)) is None
        assert asyncio.run(service.get_package_icon_stream_or_none("Missing", V1)) is None
