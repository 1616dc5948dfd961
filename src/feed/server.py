"""Package feed HTTP server using aiohttp.

Serves the NuGet package content resource on top of PackageContentService.
Absent artifacts become 404 responses and blocked licenses become 403.
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, Optional

from aiohttp import web

from common.logging_utils import configure_logging
from constants import Constants, PackageFileKind
from content.interfaces import MirrorService, PackageService, PackageStorageService
from content.service import PackageContentService
from content.versioning import to_normalized_string, try_parse_version
from licensing.checker import LicenseChecker
from licensing.exceptions import RestrictedLicenseError
from licensing.options import load_license_filter_options

logger = logging.getLogger(__name__)

_CONTENT_TYPES = {
    PackageFileKind.CONTENT: Constants.CONTENT_TYPE_NUPKG,
    PackageFileKind.MANIFEST: Constants.CONTENT_TYPE_NUSPEC,
    PackageFileKind.README: Constants.CONTENT_TYPE_README,
    PackageFileKind.ICON: Constants.CONTENT_TYPE_ICON,
}


@dataclass
class FeedConfig:
    """Configuration for the feed server."""

    host: str = "127.0.0.1"
    port: int = 5000
    base_path: str = Constants.PACKAGE_CONTENT_BASE_PATH
    license_config: Optional[str] = None


class PackageFeedServer:
    """HTTP front end for the package content resource."""

    def __init__(
        self,
        config: FeedConfig,
        content_service: PackageContentService,
        license_checker: Optional[LicenseChecker] = None,
    ):
        """Initialize the feed server.

        Args:
            config: Server configuration.
            content_service: Service resolving package artifacts.
            license_checker: Checker reported by the health endpoint.
        """
        if content_service is None:
            raise ValueError("content_service is required")
        self._config = config
        self._content = content_service
        self._license_checker = license_checker
        self._app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None

    def _create_app(self) -> web.Application:
        """Create the aiohttp application."""
        base = self._config.base_path.rstrip("/")
        app = web.Application()
        app.router.add_get(Constants.HEALTH_PATH, self._health_check)
        app.router.add_get(f"{base}/{{id}}/index.json", self._get_versions)
        app.router.add_get(f"{base}/{{id}}/{{version}}/readme", self._get_readme)
        app.router.add_get(f"{base}/{{id}}/{{version}}/icon", self._get_icon)
        app.router.add_get(f"{base}/{{id}}/{{version}}/{{file}}", self._get_package_file)
        return app

    async def _health_check(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        license_filter: Dict[str, Any] = {"enabled": False, "blocked_license_patterns": []}
        if self._license_checker is not None:
            license_filter = self._license_checker.options.to_dict()
        return web.json_response({"status": "ok", "license_filter": license_filter})

    async def _get_versions(self, request: web.Request) -> web.Response:
        package_id = request.match_info["id"]
        response = await self._content.get_package_versions_or_none(package_id)
        if response is None:
            return self._not_found(package_id)
        return web.json_response(response.to_dict())

    async def _get_package_file(self, request: web.Request) -> web.StreamResponse:
        """Serve ``{id}.{version}.nupkg`` or ``{id}.nuspec``."""
        package_id = request.match_info["id"]
        version = try_parse_version(request.match_info["version"])
        file_name = request.match_info["file"].lower()
        if version is None:
            return self._not_found(package_id)

        if file_name.endswith(f".{PackageFileKind.CONTENT.value}"):
            try:
                stream = await self._content.get_package_content_stream_or_none(package_id, version)
            except RestrictedLicenseError as e:
                return self._forbidden(e)
            return await self._stream_or_not_found(request, package_id, stream, PackageFileKind.CONTENT)

        if file_name.endswith(f".{PackageFileKind.MANIFEST.value}"):
            stream = await self._content.get_package_manifest_stream_or_none(package_id, version)
            return await self._stream_or_not_found(request, package_id, stream, PackageFileKind.MANIFEST)

        return self._not_found(package_id)

    async def _get_readme(self, request: web.Request) -> web.StreamResponse:
        package_id = request.match_info["id"]
        version = try_parse_version(request.match_info["version"])
        if version is None:
            return self._not_found(package_id)
        stream = await self._content.get_package_readme_stream_or_none(package_id, version)
        return await self._stream_or_not_found(request, package_id, stream, PackageFileKind.README)

    async def _get_icon(self, request: web.Request) -> web.StreamResponse:
        package_id = request.match_info["id"]
        version = try_parse_version(request.match_info["version"])
        if version is None:
            return self._not_found(package_id)
        stream = await self._content.get_package_icon_stream_or_none(package_id, version)
        return await self._stream_or_not_found(request, package_id, stream, PackageFileKind.ICON)

    async def _stream_or_not_found(
        self,
        request: web.Request,
        package_id: str,
        stream: Optional[BinaryIO],
        kind: PackageFileKind,
    ) -> web.StreamResponse:
        """Copy a storage stream into the response in chunks."""
        if stream is None:
            return self._not_found(package_id)

        response = web.StreamResponse(status=200)
        response.content_type = _CONTENT_TYPES[kind]
        loop = asyncio.get_running_loop()
        with stream:
            await response.prepare(request)
            while True:
                chunk = await loop.run_in_executor(None, stream.read, Constants.STREAM_CHUNK_SIZE)
                if not chunk:
                    break
                await response.write(chunk)
        await response.write_eof()
        return response

    def _not_found(self, package_id: str) -> web.Response:
        return web.json_response(
            {"error": "Package not found", "package": package_id},
            status=404,
        )

    def _forbidden(self, error: RestrictedLicenseError) -> web.Response:
        """Create a 403 response for a package blocked by license.

        Args:
            error: The restriction raised by the content service.

        Returns:
            403 Forbidden response.
        """
        body = error.to_dict(to_normalized_string(error.package_version))
        return web.Response(
            status=403,
            content_type="application/json",
            body=json.dumps(body, indent=2).encode(),
        )

    async def start(self) -> None:
        """Start the feed server."""
        self._app = self._create_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        site = web.TCPSite(self._runner, self._config.host, self._config.port)
        await site.start()

        logger.info(
            "Package feed listening on http://%s:%s%s",
            self._config.host, self._config.port, self._config.base_path,
        )

    async def stop(self) -> None:
        """Stop the feed server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._app = None


def create_feed_server(
    config: FeedConfig,
    mirror: MirrorService,
    packages: PackageService,
    storage: PackageStorageService,
) -> PackageFeedServer:
    """Wire the license checker, content service and HTTP server together.

    License filter options are loaded from ``config.license_config``. An
    invalid blocked pattern fails here, before the server starts.
    """
    configure_logging()
    options = load_license_filter_options(config.license_config)
    license_checker = LicenseChecker(options)
    content_service = PackageContentService(mirror, packages, storage, license_checker)
    return PackageFeedServer(config, content_service, license_checker)


def run_feed_server_sync(server: PackageFeedServer) -> None:
    """Run the feed server until SIGTERM or SIGINT.

    Args:
        server: A configured feed server.
    """
    async def serve_until_signalled():
        shutdown = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, shutdown.set)
            except NotImplementedError:
                # Windows: Ctrl+C arrives as KeyboardInterrupt instead
                break
        await server.start()
        try:
            await shutdown.wait()
            logger.info("Stopping package feed")
        finally:
            await server.stop()

    try:
        asyncio.run(serve_until_signalled())
    except KeyboardInterrupt:
        logger.info("Interrupted")
    logger.info("Package feed stopped")
