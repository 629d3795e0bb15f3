"""
=============================================================================
FILE HANDLER
=============================================================================

Reads and writes plain files under the serving directory.

    GET  /files/<name>  → stream <directory>/<name>     200 / 404
    POST /files/<name>  → write body to <directory>/<name>  201 / 500

=============================================================================
PATH CONTAINMENT
=============================================================================

<name> comes straight from the request path, so it can contain "..",
extra slashes or point through a symlink. Every name is resolved first
and then checked against the resolved serving directory:

    directory = /srv/files
    name      = ../../etc/passwd

    (/srv/files / "../../etc/passwd").resolve() → /etc/passwd
    /etc/passwd.relative_to(/srv/files)         → ValueError  ✗ rejected

A rejected name is indistinguishable from a missing file: GET answers 404
and POST answers 500, same as any other failure on that route.

=============================================================================
CONCURRENCY
=============================================================================

Reads and writes of the same file are not coordinated. Two POSTs race
and the last writer wins; a GET during a POST may see a partial file.

=============================================================================
"""

import os
import stat
import logging
from pathlib import Path
from typing import Optional

from ..http.request import HTTPRequest
from ..http.response import (
    HTTPResponse,
    ResponseBuilder,
    created,
    internal_error,
    not_found,
)


logger = logging.getLogger(__name__)


class FileHandler:
    """
    GET and POST handlers for /files/*name.

    Usage:
        files = FileHandler("/tmp/data")
        router.add_route("/files/*name", files.get, method="GET")
        router.add_route("/files/*name", files.post, method="POST")

    With directory=None every GET is a 404 and every POST a 500.
    """

    def __init__(self, directory: Optional[str]):
        self.root_dir: Optional[Path] = None
        if directory is not None:
            # Resolved once so the containment check compares real paths
            self.root_dir = Path(directory).resolve()

    def _resolve(self, name: str) -> Optional[Path]:
        """
        Map a request name to a path inside the serving directory.

        Returns:
            The resolved path, or None when no directory is configured or
            the name escapes it.
        """
        if self.root_dir is None:
            logger.warning("File request but no serving directory is configured")
            return None

        try:
            full_path = (self.root_dir / name).resolve()
            full_path.relative_to(self.root_dir)
        except (OSError, ValueError):
            logger.warning(f"Path escapes serving directory: {name!r}")
            return None

        return full_path

    def get(self, request: HTTPRequest) -> HTTPResponse:
        """
        Stream a file back as application/octet-stream.

        The file is opened here and its size taken from the open descriptor,
        so Content-Length matches what is actually read. The response owns
        the open file from then on.
        """
        name = request.path_params.get("name", "")
        path = self._resolve(name)
        if path is None:
            return not_found()

        try:
            fileobj = open(path, "rb")
        except OSError as e:
            # Missing, permission denied, a directory...
            logger.warning(f"Cannot read {path}: {e}")
            return not_found()

        try:
            info = os.fstat(fileobj.fileno())
        except OSError as e:
            fileobj.close()
            logger.warning(f"Cannot stat {path}: {e}")
            return not_found()

        if not stat.S_ISREG(info.st_mode):
            fileobj.close()
            logger.warning(f"Not a regular file: {path}")
            return not_found()

        return ResponseBuilder().stream(fileobj, info.st_size).build()

    def post(self, request: HTTPRequest) -> HTTPResponse:
        """Write the request body to the file, creating or truncating it."""
        name = request.path_params.get("name", "")
        path = self._resolve(name)
        if path is None:
            return internal_error()

        try:
            with open(path, "wb") as f:
                f.write(request.body)
        except OSError as e:
            logger.warning(f"Cannot write {path}: {e}")
            return internal_error()

        logger.debug(f"Wrote {len(request.body)} bytes to {path}")
        return created()
