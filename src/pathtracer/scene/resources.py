"""External resources referenced by a scene document.

Meshes and measured BRDF tables live in files whose formats belong to I/O
collaborators. The cache resolves the file names found in the document,
calls the supplied loader once per resolved path and hands out the decoded
buffers. Buffers can also be registered up front (procedural meshes, tests).
"""

import logging
from collections.abc import Callable, Mapping
from pathlib import Path

from pathtracer.errors import ResourceError
from pathtracer.geometry.mesh import MeshData
from pathtracer.materials.measured import MeasuredTable

logger = logging.getLogger(__name__)

MeshLoader = Callable[[Path, str], MeshData]
BrdfLoader = Callable[[Path], MeasuredTable]


class ResourceCache:
    """Loads and caches meshes and measured BRDF tables.

    Args:
        base_dir: Directory relative file names resolve against (usually the
            scene file's directory). Defaults to the working directory.
        mesh_loader: ``loader(path, model) -> MeshData``.
        brdf_loader: ``loader(path) -> MeasuredTable``.
        meshes: Pre-registered meshes keyed by ``(file, model)``.
        brdfs: Pre-registered tables keyed by file name.
    """

    def __init__(
        self,
        base_dir: str | Path | None = None,
        mesh_loader: MeshLoader | None = None,
        brdf_loader: BrdfLoader | None = None,
        meshes: Mapping[tuple[str, str], MeshData] | None = None,
        brdfs: Mapping[str, MeasuredTable] | None = None,
    ) -> None:
        self.base_dir = Path(base_dir) if base_dir is not None else Path.cwd()
        self.mesh_loader = mesh_loader
        self.brdf_loader = brdf_loader
        self._meshes: dict[tuple[Path, str], MeshData] = {}
        self._brdfs: dict[Path, MeasuredTable] = {}
        for (file, model), mesh in (meshes or {}).items():
            self.add_mesh(file, model, mesh)
        for file, table in (brdfs or {}).items():
            self.add_measured(file, table)

    def resolve(self, file: str | Path) -> Path:
        path = Path(file).expanduser()
        if not path.is_absolute():
            path = self.base_dir / path
        return path.resolve()

    def add_mesh(self, file: str | Path, model: str, mesh: MeshData) -> None:
        self._meshes[(self.resolve(file), model)] = mesh

    def add_measured(self, file: str | Path, table: MeasuredTable) -> None:
        self._brdfs[self.resolve(file)] = table

    def mesh(self, file: str | Path, model: str) -> MeshData:
        """Mesh buffers for one model of a mesh file.

        Raises:
            ResourceError: If the file is missing, no loader is configured,
                or the loader fails.
        """
        path = self.resolve(file)
        key = (path, model)
        if key not in self._meshes:
            if self.mesh_loader is None:
                raise ResourceError(f"no mesh loader configured for '{file}' (model '{model}')", path)
            self._check_exists(path)
            logger.info("loading mesh '%s' from %s", model, path)
            mesh = self._call(self.mesh_loader, path, model)
            if not isinstance(mesh, MeshData):
                raise ResourceError(f"mesh loader returned {type(mesh).__name__}, expected MeshData", path)
            self._meshes[key] = mesh
        return self._meshes[key]

    def measured_brdf(self, file: str | Path) -> MeasuredTable:
        """Decoded measured BRDF table for a file.

        Raises:
            ResourceError: If the file is missing, no loader is configured,
                or the loader fails.
        """
        path = self.resolve(file)
        if path not in self._brdfs:
            if self.brdf_loader is None:
                raise ResourceError(f"no measured BRDF loader configured for '{file}'", path)
            self._check_exists(path)
            logger.info("loading measured BRDF from %s", path)
            table = self._call(self.brdf_loader, path)
            if not isinstance(table, MeasuredTable):
                raise ResourceError(f"BRDF loader returned {type(table).__name__}, expected MeasuredTable", path)
            self._brdfs[path] = table
        return self._brdfs[path]

    @property
    def cached_meshes(self) -> int:
        return len(self._meshes)

    @property
    def cached_brdfs(self) -> int:
        return len(self._brdfs)

    @staticmethod
    def _check_exists(path: Path) -> None:
        if not path.is_file():
            raise ResourceError(f"file not found: {path}", path)

    @staticmethod
    def _call(loader, path: Path, *args):
        try:
            return loader(path, *args)
        except ResourceError:
            raise
        except (OSError, ValueError) as exc:
            raise ResourceError(f"failed to load {path}: {exc}", path) from exc
